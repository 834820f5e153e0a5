"""
Batch Ride Windowing Script.

Runs the windowing pipeline (and optionally the single-pass engine) over
recorded rides exported as CSV, one frame per row, and writes the results
as JSON next to each input (or into --out-dir).

Usage:
    python scripts/run_ride_windowing.py <ride.csv | rides_dir> [--out-dir DIR] [--analyze]
"""

import argparse
import json
import os
import sys

from loguru import logger
from tqdm import tqdm

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import configure_logging, settings
from src.ridecore.engine import AnalyzeOptions, create_engine
from src.ridecore.loader import load_frames_csv, windows_to_dataframe
from src.ridecore.windowing import build_core_windowing


def collect_inputs(path):
    """단일 CSV 또는 디렉토리 안의 모든 CSV"""
    if os.path.isdir(path):
        return sorted(
            os.path.join(path, f) for f in os.listdir(path) if f.lower().endswith(".csv")
        )
    return [path]


def output_path(csv_path, out_dir, suffix):
    name = os.path.splitext(os.path.basename(csv_path))[0]
    target_dir = out_dir or os.path.dirname(os.path.abspath(csv_path))
    return os.path.join(target_dir, f"{name}.{suffix}")


def process_ride(csv_path, config, out_dir=None, analyze=False, table=False):
    frames = load_frames_csv(csv_path)
    result = build_core_windowing(frames, config=config)

    payload = {"windowing": result.to_wire()}
    if analyze:
        engine = create_engine(AnalyzeOptions(expected_imu_hz=settings.EXPECTED_IMU_HZ), config)
        for frame in frames:
            engine.ingest(frame)
        payload["analysis"] = engine.finalize().to_wire()

    with open(output_path(csv_path, out_dir, "windowing.json"), "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    if table:
        windows_to_dataframe(result).to_csv(
            output_path(csv_path, out_dir, "windows.csv"), index=False
        )

    return len(result.windows), len(result.segments), len(result.events)


def main():
    # 1. Set up argument parser
    parser = argparse.ArgumentParser(description="Run ride motion windowing over recorded CSV rides.")
    parser.add_argument("input", type=str, help="Ride CSV file or directory of ride CSV files.")
    parser.add_argument("--out-dir", type=str, default=None, help="Directory for output files.")
    parser.add_argument("--analyze", action="store_true", help="Also run the single-pass engine.")
    parser.add_argument("--table", action="store_true", help="Also export per-window CSV tables.")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL.")

    if len(sys.argv) == 1:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args()
    configure_logging(args.log_level)

    # 2. 입력 수집
    inputs = collect_inputs(args.input)
    if not inputs:
        logger.warning(f"No CSV rides found under {args.input}")
        return
    if args.out_dir:
        os.makedirs(args.out_dir, exist_ok=True)

    config = settings.analysis_config()
    logger.info(f"Processing {len(inputs)} ride(s) with {config.windowing.size_ms}ms windows")

    # 3. 실행
    failed = 0
    for csv_path in tqdm(inputs, total=len(inputs)):
        try:
            n_windows, n_segments, n_events = process_ride(
                csv_path, config, args.out_dir, args.analyze, args.table
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to process {csv_path} -> {e}")
            failed += 1
            continue
        logger.debug(f"{csv_path}: {n_windows} windows, {n_segments} segments, {n_events} events")

    logger.info(f"Done. {len(inputs) - failed} succeeded, {failed} failed.")


if __name__ == "__main__":
    main()
