"""Performance benchmarks for parallel repetition dispatch."""

from typing import Dict

import numpy as np
import pandas as pd

from cvsmith import ResamplingPlan, evaluate_resampling
from cvsmith.config import available_cpu_count, fork_available


class OLSModel:
    def __init__(self, predictors, beta):
        self.predictors = predictors
        self.beta = beta

    def predict(self, newdata):
        X = newdata[list(self.predictors)].to_numpy(dtype=float)
        return self.beta[0] + X @ self.beta[1:]


def fit_ols(formula, data):
    X = data[list(formula.predictors)].to_numpy(dtype=float)
    X1 = np.column_stack([np.ones(len(X)), X])
    beta, *_ = np.linalg.lstsq(X1, data[formula.response].to_numpy(dtype=float), rcond=None)
    return OLSModel(formula.predictors, beta)


def rmse(observed, predicted):
    residuals = np.asarray(observed, dtype=float) - np.asarray(predicted, dtype=float)
    return {"rmse": float(np.sqrt(np.mean(residuals**2)))}


def make_data(n_samples: int, n_predictors: int = 5, seed: int = 42) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n_samples, n_predictors))
    coef = np.linspace(2.0, 0.0, n_predictors)
    frame = pd.DataFrame(X, columns=[f"x{i + 1}" for i in range(n_predictors)])
    frame["x"] = rng.uniform(0, 1000, n_samples)
    frame["y"] = rng.uniform(0, 1000, n_samples)
    frame["z"] = X @ coef + rng.normal(scale=0.5, size=n_samples)
    return frame


def benchmark_backend(
    backend: str,
    scheduling_policy: str,
    worker_count: int,
    n_samples: int = 2000,
    n_repetitions: int = 16,
    n_folds: int = 10,
    n_permutations: int = 20,
) -> Dict[str, float]:
    """Benchmark one backend/scheduling combination.

    Args:
        backend: 'fork' or 'message'.
        scheduling_policy: 'static' or 'load_balanced'.
        worker_count: Number of worker processes.
        n_samples: Number of observations.
        n_repetitions: Number of repetitions.
        n_folds: Number of folds per repetition.
        n_permutations: Permutations per variable and fold.

    Returns:
        Dictionary with timing results.
    """
    data = make_data(n_samples)
    rng = np.random.default_rng(0)
    splits = []
    for _ in range(n_repetitions):
        test_sets = np.array_split(rng.permutation(n_samples), n_folds)
        splits.append(
            [(np.setdiff1d(np.arange(n_samples), test), test) for test in test_sets]
        )
    plan = ResamplingPlan.from_splits(splits)
    formula = "z ~ " + " + ".join(c for c in data.columns if c.startswith("x") and c != "x")

    result = evaluate_resampling(
        data,
        formula,
        fit=fit_ols,
        score=rmse,
        plan=plan,
        run_importance=True,
        importance_permutation_count=n_permutations,
        parallel_backend=backend,
        scheduling_policy=scheduling_policy,
        worker_count=worker_count,
        rng_seed=42,
        collect_benchmarks=True,
        verbose=False,
    )
    elapsed = result.benchmark.elapsed_seconds
    return {
        "backend": backend,
        "scheduling_policy": scheduling_policy,
        "worker_count": result.benchmark.worker_count,
        "total_time_seconds": elapsed,
        "repetitions_per_second": n_repetitions / elapsed,
    }


def run_all_dispatch_benchmarks() -> Dict[str, Dict[str, float]]:
    """Run all dispatch benchmarks."""
    n_workers = min(4, available_cpu_count())
    backends = ["message"] + (["fork"] if fork_available() else [])

    results = {"sequential": benchmark_backend("message", "static", 1)}
    for backend in backends:
        for policy in ("static", "load_balanced"):
            print(f"Benchmarking {backend} backend ({policy})...")
            results[f"{backend}_{policy}"] = benchmark_backend(backend, policy, n_workers)
    return results


if __name__ == "__main__":
    """Run benchmarks and print results."""
    results = run_all_dispatch_benchmarks()

    print("\n" + "=" * 60)
    print("DISPATCH PERFORMANCE BENCHMARKS")
    print("=" * 60)

    baseline = results["sequential"]["total_time_seconds"]
    for name, data in results.items():
        print(
            f"  {name:24s}: {data['worker_count']:2d} workers, "
            f"{data['total_time_seconds']:6.2f} s, "
            f"speedup {baseline / data['total_time_seconds']:4.1f}x"
        )
