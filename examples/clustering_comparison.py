"""
Compare the three clustering strategies on the same data.
"""

import time

import numpy as np

from ivfann import IVFIndex, create_kmeans


STRATEGIES = [
    ("lloyd", {"cluster_count": 64, "max_iterations": 30}),
    ("mini_batch", {"cluster_count": 64, "batch_size": 512, "max_iterations": 200}),
    ("hierarchical", {"branch_factor": 4, "max_depth": 4}),
]


def main():
    rng = np.random.default_rng(7)
    vectors = rng.standard_normal((10000, 32)).astype(np.float32)

    print(f"{'strategy':<14}{'clusters':>10}{'empty':>8}{'loss':>14}{'build s':>10}")
    for name, params in STRATEGIES:
        for engine in ("numpy", "scipy"):
            kmeans = create_kmeans(name, "l2sq", engine, random_state=0, **params)
            index = IVFIndex(kmeans)

            start = time.time()
            index.build(vectors)
            elapsed = time.time() - start

            stats = index.stats()
            print(
                f"{name + '/' + engine:<14}{stats.cluster_count:>10}"
                f"{stats.extra['empty_clusters']:>8}{stats.extra['loss']:>14.1f}"
                f"{elapsed:>10.2f}"
            )


if __name__ == "__main__":
    main()
