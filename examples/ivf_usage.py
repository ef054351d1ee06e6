"""
Example usage of the IVFIndex.
"""

import time

import numpy as np

from ivfann import IVFIndex, LloydKMeans, setup_logger


def recall_at_k(index, vectors, queries, k, n_probe):
    """Fraction of true top-k neighbours found with the given n_probe."""
    calculator = index.kmeans.calculator
    found = 0
    for query in queries:
        exact = np.argsort(calculator.distances(query, vectors), kind="stable")[:k]
        approx = [r.id for r in index.search(query, top_k=k, n_probe=n_probe)]
        found += len(set(exact.tolist()) & set(approx))
    return found / (len(queries) * k)


def main():
    setup_logger(level="INFO")

    print("=" * 60)
    print("IVF Index Usage Example")
    print("=" * 60)

    dimension = 64
    n_vectors = 20000
    n_queries = 50
    k = 10

    rng = np.random.default_rng(42)
    vectors = rng.standard_normal((n_vectors, dimension)).astype(np.float32)
    queries = rng.standard_normal((n_queries, dimension)).astype(np.float32)

    # Rule of thumb: about sqrt(n) clusters
    n_clusters = int(np.sqrt(n_vectors))
    print(f"\n1. Building IVF index with {n_clusters} clusters...")

    index = IVFIndex(
        LloydKMeans(cluster_count=n_clusters, max_iterations=25, random_state=rng)
    )
    start = time.time()
    index.build(vectors)
    print(f"   Build time: {time.time() - start:.2f}s")

    stats = index.stats()
    sizes = stats.extra["cluster_sizes"]
    print("\n2. Cluster information:")
    print(f"   Clusters: {stats.cluster_count}, empty: {stats.extra['empty_clusters']}")
    print(f"   Cluster size - min: {sizes['min']}, max: {sizes['max']}, "
          f"mean: {sizes['mean']:.1f}")

    print("\n3. Recall vs n_probe:")
    for n_probe in (1, 2, 4, 8, 16, 32):
        start = time.time()
        recall = recall_at_k(index, vectors, queries, k, n_probe)
        elapsed = (time.time() - start) / n_queries * 1000
        print(f"   n_probe={n_probe:3d}  recall@{k}={recall:.3f}  ({elapsed:.2f} ms/query)")

    print("\n4. Single query:")
    for result in index.search(queries[0], top_k=5, n_probe=8):
        print(f"   {result}")


if __name__ == "__main__":
    main()
