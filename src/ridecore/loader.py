"""
Tabular frame loading (pandas).

평평한 테이블(CSV 1행 = 프레임 1개)을 Frame 객체로 변환하고,
윈도우 결과를 다시 DataFrame 으로 펼쳐 검토/내보내기에 사용합니다.
"""

from typing import List, Optional

import pandas as pd
from loguru import logger

from src.ridecore.core import Frame, GpsFix, GyroRate, Vector3, WindowingResult

REQUIRED_COLUMNS = ["timestamp", "acc_g_x", "acc_g_y", "acc_g_z"]
LIN_ACC_COLUMNS = ["lin_acc_x", "lin_acc_y", "lin_acc_z"]
GYRO_COLUMNS = ["gyro_alpha", "gyro_beta", "gyro_gamma"]
GPS_REQUIRED_COLUMNS = ["gps_lat", "gps_lon", "gps_accuracy", "gps_timestamp"]


def _cell(row, column: str) -> Optional[float]:
    """누락된 컬럼이나 NaN 셀은 None"""
    if column not in row.index:
        return None
    value = row[column]
    if pd.isna(value):
        return None
    return float(value)


def _vector(row, columns: List[str]) -> Optional[Vector3]:
    values = [_cell(row, c) for c in columns]
    if any(v is None for v in values):
        return None
    return Vector3(x=values[0], y=values[1], z=values[2])


def _gyro(row) -> Optional[GyroRate]:
    alpha, beta, gamma = (_cell(row, c) for c in GYRO_COLUMNS)
    if alpha is None and beta is None and gamma is None:
        return None
    return GyroRate(alpha=alpha, beta=beta, gamma=gamma)


def _gps(row) -> Optional[GpsFix]:
    lat, lon, accuracy, timestamp = (_cell(row, c) for c in GPS_REQUIRED_COLUMNS)
    if lat is None or lon is None or accuracy is None or timestamp is None:
        return None
    return GpsFix(
        lat=lat,
        lon=lon,
        accuracy=accuracy,
        speed=_cell(row, "gps_speed"),
        heading=_cell(row, "gps_heading"),
        timestamp=int(timestamp),
    )


def frames_from_dataframe(df: pd.DataFrame) -> List[Frame]:
    """
    DataFrame -> Frame 목록 (행 순서 유지).

    linAcc / GPS 그룹은 필수 셀이 모두 있을 때만 붙입니다.
    :raises ValueError: 필수 컬럼(timestamp, acc_g_x/y/z) 누락
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"missing required columns: {', '.join(missing)}")

    frames = []
    for _, row in df.iterrows():
        frames.append(
            Frame(
                timestamp=float(row["timestamp"]),
                acc_g=Vector3(
                    x=float(row["acc_g_x"]), y=float(row["acc_g_y"]), z=float(row["acc_g_z"])
                ),
                lin_acc=_vector(row, LIN_ACC_COLUMNS),
                gyro_rate=_gyro(row),
                gps=_gps(row),
            )
        )
    return frames


def load_frames_csv(path: str) -> List[Frame]:
    df = pd.read_csv(path)
    logger.debug(f"Loaded {len(df)} rows from {path}")
    return frames_from_dataframe(df)


def windows_to_dataframe(result: WindowingResult) -> pd.DataFrame:
    """윈도우 요약을 1행 1윈도우 테이블로 펼침"""
    rows = []
    for w in result.windows:
        rows.append(
            {
                "t_start_sec": w.t_start_sec,
                "t_end_sec": w.t_end_sec,
                "state": w.classification.state.value,
                "confidence": w.classification.confidence,
                "reason": w.classification.reason,
                "imu_samples": w.imu.samples_count,
                "accel_rms": w.imu.accel_rms,
                "jerk_rms": w.imu.jerk_rms,
                "gyro_rms": w.imu.gyro_rms,
                "gps_samples": w.gps.samples_count,
                "gps_hz": w.gps.observed_hz,
                "gps_speed_median": w.gps.speed_median,
                "motion": w.motion.state.value if w.motion else None,
                "in_vehicle": w.in_vehicle.value if w.in_vehicle else None,
                "event_trigger": w.event.trigger.value if w.event else None,
                "flags": ",".join(f.value for f in w.flags),
            }
        )
    return pd.DataFrame(rows)
