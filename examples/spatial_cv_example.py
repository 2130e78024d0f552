"""Example: Spatial versus non-spatial cross-validation.

Compares the error of a linear model estimated by random k-fold
cross-validation with the error estimated by spatial block
cross-validation, and assesses permutation variable importance.
"""

import logging

import numpy as np
import pandas as pd

from cvsmith import ResamplingPlan, evaluate_resampling


class LinearModel:
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
    return LinearModel(formula.predictors, beta)


def error_measures(observed, predicted):
    residuals = np.asarray(observed, dtype=float) - np.asarray(predicted, dtype=float)
    return {
        "rmse": float(np.sqrt(np.mean(residuals**2))),
        "mad": float(np.median(np.abs(residuals))),
    }


def random_kfold(data, coords, n_folds=5, n_repetitions=10, seed=0):
    """Repeated random k-fold partitioning."""
    rng = np.random.default_rng(seed)
    n_rows = len(data)
    splits = []
    for _ in range(n_repetitions):
        test_sets = np.array_split(rng.permutation(n_rows), n_folds)
        splits.append([(np.setdiff1d(np.arange(n_rows), t), t) for t in test_sets])
    return ResamplingPlan.from_splits(splits)


def spatial_blocks(data, coords, n_blocks=5, n_repetitions=10, seed=0):
    """Repeated partitioning into vertical strips with random offsets."""
    rng = np.random.default_rng(seed)
    x = data[coords[0]].to_numpy()
    splits = []
    for _ in range(n_repetitions):
        offset = rng.uniform(0, np.ptp(x) / n_blocks)
        edges = np.linspace(x.min(), x.max(), n_blocks + 1)[1:-1] + offset
        block = np.digitize(x, edges)
        splits.append(
            [
                (np.flatnonzero(block != b), np.flatnonzero(block == b))
                for b in np.unique(block)
            ]
        )
    return ResamplingPlan.from_splits(splits)


def main():
    """Run spatial cross-validation example."""
    logging.basicConfig(level=logging.WARNING)

    print("=" * 60)
    print("Spatial versus Non-Spatial Cross-Validation Example")
    print("=" * 60)

    # Spatially trending response: the model misses the trend
    print("\n1. Creating synthetic spatial data...")
    rng = np.random.default_rng(42)
    n_points = 400
    data = pd.DataFrame(
        {
            "x": rng.uniform(0, 1000, n_points),
            "y": rng.uniform(0, 1000, n_points),
            "slope": rng.normal(size=n_points),
            "noise": rng.normal(size=n_points),
        }
    )
    trend = np.sin(data["x"] / 150.0) * 2.0
    data["elevation"] = 3.0 * data["slope"] + trend + rng.normal(scale=0.5, size=n_points)
    print(f"Created {n_points} points")

    formula = "elevation ~ slope + noise"
    options = dict(
        fit=fit_ols,
        score=error_measures,
        importance_variables=["slope", "noise"],
        importance_permutation_count=100,
        rng_seed=42,
        compute_distance=True,
        verbose=False,
    )

    print("\n2. Random k-fold cross-validation...")
    random_result = evaluate_resampling(data, formula, plan_fn=random_kfold, **options)
    print(random_result.pooled_error.mean().round(3).to_string())

    print("\n3. Spatial block cross-validation...")
    spatial_result = evaluate_resampling(data, formula, plan_fn=spatial_blocks, **options)
    print(spatial_result.pooled_error.mean().round(3).to_string())

    print("\n4. Mean test-to-training distance:")
    for name, result in (("random", random_result), ("spatial", spatial_result)):
        print(f"  {name:8s}: {result.error_frame()['distance'].mean():7.2f}")

    print("\n5. Permutation variable importance (spatial, mean over folds):")
    importance = spatial_result.importance_frame().groupby("variable")[["rmse", "mad"]].mean()
    print(importance.round(3).to_string())

    print("\n✓ Example completed successfully!")


if __name__ == "__main__":
    main()
