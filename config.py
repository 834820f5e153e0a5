# config.py
import os
import sys

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.ridecore.thresholds import AnalysisConfig


class Settings(BaseSettings):
    """
    프로젝트 전역 설정 관리 (Pydantic V2)
    .env 파일에서 환경 변수를 로드하며, 없을 경우 기본값을 사용합니다.
    """

    # Project Info
    PROJECT_NAME: str = "Ride_Motion_Core"
    VERSION: str = "1.0.0"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "./logs"
    LOG_TO_FILE: bool = False

    # Analysis Settings
    EXPECTED_IMU_HZ: float = 50.0
    WINDOW_SIZE_MS: int = 5000
    WINDOW_STEP_MS: int = 5000

    # .env 파일 로드 설정
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    def analysis_config(self) -> AnalysisConfig:
        """환경 설정값을 반영한 분석 설정"""
        return AnalysisConfig().with_overrides(
            windowing={"size_ms": self.WINDOW_SIZE_MS, "step_ms": self.WINDOW_STEP_MS},
            engine={"expected_imu_hz": self.EXPECTED_IMU_HZ},
        )


# 싱글톤 인스턴스 생성
settings = Settings()


def configure_logging(level: str = None) -> None:
    """loguru 기본 sink 교체 (스크립트에서만 호출)"""
    logger.remove()
    logger.add(sys.stderr, level=level or settings.LOG_LEVEL)
    if settings.LOG_TO_FILE:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        logger.add(
            os.path.join(settings.LOG_DIR, "ridecore_{time}.log"),
            level=level or settings.LOG_LEVEL,
            rotation="10 MB",
        )
