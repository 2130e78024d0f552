"""Resampling plan objects.

A resampling plan is an ordered sequence of repetitions, each holding an
ordered sequence of train/test folds. Plans are produced by an external
partitioning strategy (spatial or not) and are immutable once built.
"""

import copy
from dataclasses import dataclass, replace
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from cvsmith.utils.errors import raise_validation_error

IndexLike = Union[Sequence[int], np.ndarray]


def _as_index_array(values: IndexLike, name: str) -> np.ndarray:
    array = np.asarray(values)
    if array.ndim != 1:
        raise_validation_error(
            f"Fold {name} indices must be one-dimensional",
            received=f"array with shape {array.shape}",
        )
    if array.size == 0:
        return np.zeros(0, dtype=np.int64)
    if array.dtype == bool:
        raise_validation_error(
            f"Fold {name} indices must be integer row positions",
            received="boolean mask",
            suggestion="Convert masks with np.flatnonzero(mask)",
        )
    if not np.issubdtype(array.dtype, np.integer):
        if not np.all(np.mod(array, 1) == 0):
            raise_validation_error(
                f"Fold {name} indices must be integer row positions",
                received=str(array.dtype),
            )
    result = array.astype(np.int64)
    result.setflags(write=False)
    return result


@dataclass(frozen=True, eq=False)
class Fold:
    """One train/test partition of the data set.

    Attributes:
        train: Positional row indices of the training sample.
        test: Positional row indices of the test sample.
        distance: Mean nearest-neighbour distance from test to training
            locations, if computed.
    """

    train: np.ndarray
    test: np.ndarray
    distance: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate and freeze the index arrays."""
        object.__setattr__(self, "train", _as_index_array(self.train, "train"))
        object.__setattr__(self, "test", _as_index_array(self.test, "test"))

    @property
    def n_train(self) -> int:
        return int(self.train.size)

    @property
    def n_test(self) -> int:
        return int(self.test.size)

    def overlaps(self) -> bool:
        """Whether any row is used for both training and testing."""
        return bool(np.intersect1d(self.train, self.test).size)

    def __repr__(self) -> str:
        """String representation."""
        dist = f", distance={self.distance:.3f}" if self.distance is not None else ""
        return f"Fold(n_train={self.n_train}, n_test={self.n_test}{dist})"


@dataclass(frozen=True)
class Repetition:
    """One full run of a resampling scheme.

    Attributes:
        name: Repetition label, used as the row label of pooled results.
        folds: Ordered folds of this repetition.
    """

    name: str
    folds: Tuple[Fold, ...]

    def __post_init__(self) -> None:
        """Validate Repetition parameters."""
        object.__setattr__(self, "name", str(self.name))
        folds = tuple(self.folds)
        if not folds:
            raise_validation_error(f"Repetition '{self.name}' has no folds")
        for fold in folds:
            if not isinstance(fold, Fold):
                raise_validation_error(
                    f"Repetition '{self.name}' contains a non-Fold entry",
                    expected="Fold",
                    received=type(fold).__name__,
                )
        object.__setattr__(self, "folds", folds)

    def __len__(self) -> int:
        return len(self.folds)

    def __iter__(self) -> Iterator[Fold]:
        return iter(self.folds)

    def __getitem__(self, index: int) -> Fold:
        return self.folds[index]


def _fold_from_entry(entry: Any) -> Fold:
    if isinstance(entry, Fold):
        return entry
    if isinstance(entry, Mapping):
        return Fold(train=entry["train"], test=entry["test"])
    train, test = entry
    return Fold(train=train, test=test)


@dataclass(frozen=True)
class ResamplingPlan:
    """Ordered sequence of repetitions.

    Insertion order is evaluation order and output order.

    Attributes:
        repetitions: Ordered repetitions.
        allow_overlap: Whether train and test rows may overlap within a fold
            (e.g. bootstrap plans). Defaults to False.

    Example:
        >>> import numpy as np
        >>> from cvsmith.objects import ResamplingPlan
        >>> plan = ResamplingPlan.from_splits([
        ...     [(np.arange(5, 10), np.arange(5)), (np.arange(5), np.arange(5, 10))],
        ... ])
        >>> len(plan), len(plan[0])
        (1, 2)
    """

    repetitions: Tuple[Repetition, ...]
    allow_overlap: bool = False

    def __post_init__(self) -> None:
        """Validate ResamplingPlan parameters."""
        repetitions = tuple(self.repetitions)
        if not repetitions:
            raise_validation_error("Resampling plan has no repetitions")
        names = [rep.name for rep in repetitions]
        if len(set(names)) != len(names):
            raise_validation_error(
                "Repetition names must be unique",
                received=", ".join(names),
            )
        object.__setattr__(self, "repetitions", repetitions)
        if not self.allow_overlap:
            for rep in repetitions:
                for j, fold in enumerate(rep.folds):
                    if fold.overlaps():
                        raise_validation_error(
                            f"Train and test indices overlap in repetition "
                            f"'{rep.name}', fold {j + 1}",
                            suggestion="Pass allow_overlap=True for bootstrap plans",
                        )

    @classmethod
    def from_splits(
        cls,
        splits: Iterable[Iterable[Any]],
        names: Optional[Sequence[str]] = None,
        allow_overlap: bool = False,
    ) -> "ResamplingPlan":
        """Build a plan from nested (train, test) pairs.

        Args:
            splits: One iterable of folds per repetition. A fold is a
                ``(train, test)`` pair, a mapping with ``train`` and ``test``
                keys, or a ``Fold``.
            names: Optional repetition names (default "1", "2", ...).
            allow_overlap: Whether train and test may overlap.

        Returns:
            ResamplingPlan.
        """
        reps = []
        for i, rep_splits in enumerate(splits):
            name = names[i] if names is not None else str(i + 1)
            reps.append(
                Repetition(
                    name=name,
                    folds=tuple(_fold_from_entry(entry) for entry in rep_splits),
                )
            )
        return cls(repetitions=tuple(reps), allow_overlap=allow_overlap)

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[Any, Any],
        allow_overlap: bool = False,
    ) -> "ResamplingPlan":
        """Build a plan from ``{repetition_name: folds}``.

        ``folds`` may itself be a mapping (fold name to fold entry), whose
        values are taken in insertion order.
        """
        reps = []
        for name, folds in mapping.items():
            if isinstance(folds, Mapping):
                folds = folds.values()
            reps.append(
                Repetition(
                    name=str(name),
                    folds=tuple(_fold_from_entry(entry) for entry in folds),
                )
            )
        return cls(repetitions=tuple(reps), allow_overlap=allow_overlap)

    @classmethod
    def from_splitter(
        cls,
        splitter: Any,
        data: Any,
        n_repetitions: int = 1,
        random_state: Optional[int] = None,
        allow_overlap: bool = False,
    ) -> "ResamplingPlan":
        """Build a plan from an object implementing ``split(X)``.

        Any splitter following the scikit-learn protocol works, e.g.
        ``KFold(n_splits=10, shuffle=True)``. When ``random_state`` is given
        and the splitter has a ``random_state`` attribute, repetition ``i``
        uses ``random_state + i``.

        Args:
            splitter: Object with a ``split(X)`` method yielding
                ``(train, test)`` index pairs.
            data: Data passed to ``split``.
            n_repetitions: Number of repetitions, default 1.
            random_state: Base seed for shuffling splitters, optional.
            allow_overlap: Whether train and test may overlap.

        Returns:
            ResamplingPlan.
        """
        if not hasattr(splitter, "split"):
            raise_validation_error(
                "splitter must implement split(X)",
                received=type(splitter).__name__,
            )
        if n_repetitions < 1:
            raise_validation_error(
                "n_repetitions must be at least 1", received=str(n_repetitions)
            )
        splits = []
        for i in range(n_repetitions):
            rep_splitter = splitter
            if random_state is not None and hasattr(splitter, "random_state"):
                rep_splitter = copy.deepcopy(splitter)
                rep_splitter.random_state = random_state + i
            splits.append(list(rep_splitter.split(data)))
        return cls.from_splits(splits, allow_overlap=allow_overlap)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(rep.name for rep in self.repetitions)

    @property
    def n_folds(self) -> Tuple[int, ...]:
        """Fold count of each repetition."""
        return tuple(len(rep) for rep in self.repetitions)

    def validate(self, n_rows: int) -> None:
        """Check that every index is a valid row reference.

        Args:
            n_rows: Number of rows of the data set the plan refers to.

        Raises:
            DataValidationError: If any index is out of range.
        """
        for rep in self.repetitions:
            for j, fold in enumerate(rep.folds):
                for label, idx in (("train", fold.train), ("test", fold.test)):
                    if idx.size and (idx.min() < 0 or idx.max() >= n_rows):
                        raise_validation_error(
                            f"{label} indices out of range in repetition "
                            f"'{rep.name}', fold {j + 1}",
                            expected=f"0 <= index < {n_rows}",
                            received=f"[{idx.min()}, {idx.max()}]",
                        )

    def with_distances(self, distances: Sequence[Sequence[float]]) -> "ResamplingPlan":
        """Return a copy with ``Fold.distance`` set from nested distances."""
        reps = tuple(
            replace(
                rep,
                folds=tuple(
                    replace(fold, distance=float(d))
                    for fold, d in zip(rep.folds, rep_distances)
                ),
            )
            for rep, rep_distances in zip(self.repetitions, distances)
        )
        return replace(self, repetitions=reps)

    def __len__(self) -> int:
        return len(self.repetitions)

    def __iter__(self) -> Iterator[Repetition]:
        return iter(self.repetitions)

    def __getitem__(self, index: int) -> Repetition:
        return self.repetitions[index]

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ResamplingPlan(n_repetitions={len(self)}, "
            f"n_folds={list(self.n_folds)})"
        )
