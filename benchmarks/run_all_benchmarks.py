"""Run all performance benchmarks and generate report."""

import json
from pathlib import Path

from benchmark_dispatch import run_all_dispatch_benchmarks


def main():
    """Run all benchmarks and save results."""
    print("=" * 60)
    print("CVSMITH PERFORMANCE BENCHMARK SUITE")
    print("=" * 60)
    print()

    all_results = {}

    print("\n[1/1] Dispatch Benchmarks")
    print("-" * 60)
    all_results["dispatch"] = run_all_dispatch_benchmarks()

    output_file = Path("benchmarks/results.json")
    output_file.parent.mkdir(exist_ok=True)

    # Convert numpy types to native Python types for JSON serialization
    def convert_to_native(obj):
        """Convert numpy types to native Python types."""
        if isinstance(obj, dict):
            return {k: convert_to_native(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [convert_to_native(item) for item in obj]
        elif hasattr(obj, "item"):  # numpy scalar
            return obj.item()
        else:
            return obj

    with open(output_file, "w") as f:
        json.dump(convert_to_native(all_results), f, indent=2)

    print(f"\n✓ Results saved to {output_file}")

    print("\n" + "=" * 60)
    print("BENCHMARK SUMMARY")
    print("=" * 60)

    dispatch = all_results["dispatch"]
    baseline = dispatch["sequential"]["total_time_seconds"]
    print(f"\nSequential: {baseline:6.2f} s")
    for name, data in dispatch.items():
        if name == "sequential":
            continue
        print(
            f"  {name:24s}: {data['total_time_seconds']:6.2f} s "
            f"({baseline / data['total_time_seconds']:4.1f}x)"
        )

    print("\n✓ All benchmarks completed successfully!")


if __name__ == "__main__":
    main()
