from src.ridecore.core import MotionState
from src.ridecore.vehicle import (
    VehicleGpsInput,
    VehicleHysteresisState,
    VehicleImuInput,
    VehicleWindowInput,
    apply_vehicle_hysteresis,
    is_imu_in_vehicle_band,
    non_vehicle_confidence,
    step_vehicle,
)

WALKING_IMU = VehicleImuInput(accel_rms=1.2, jerk_rms=20.0, gyro_rms=8.0)
RIDING_IMU = VehicleImuInput(accel_rms=0.5, jerk_rms=4.0, gyro_rms=2.0)


def gps(speed, samples=5, hz=1.0, accuracy=8.0):
    return VehicleGpsInput(
        samples_count=samples, observed_hz=hz, accuracy_p95_m=accuracy, speed_median=speed
    )


def test_single_gps_spike_while_walking_does_not_flicker():
    speeds = [0.9] * 30
    speeds[15] = 3.7
    windows = [VehicleWindowInput(imu=WALKING_IMU, gps=gps(s)) for s in speeds]

    detections = apply_vehicle_hysteresis(windows)

    assert len(detections) == 30
    assert all(d.value is False for d in detections)


def test_enters_vehicle_after_two_qualifying_windows():
    windows = [VehicleWindowInput(imu=RIDING_IMU, gps=gps(s)) for s in [0.5, 6.0, 6.0, 6.0]]

    detections = apply_vehicle_hysteresis(windows)

    assert detections[0].value is False
    assert detections[1].value is False
    assert detections[1].reason == "hysteresis_pending"
    assert detections[2].value is True
    assert detections[2].reason == "gps_speed_hysteresis_on"
    assert detections[3].value is True


def test_gps_unusable_windows_hold_vehicle_state():
    unusable = VehicleGpsInput(samples_count=0, observed_hz=0.0)
    windows = [
        VehicleWindowInput(imu=RIDING_IMU, gps=gps(8.0)),
        VehicleWindowInput(imu=RIDING_IMU, gps=gps(8.0)),
        VehicleWindowInput(imu=RIDING_IMU, gps=unusable),
        VehicleWindowInput(imu=RIDING_IMU, gps=unusable),
    ]

    detections = apply_vehicle_hysteresis(windows)

    assert detections[1].value is True
    assert [d.value for d in detections[2:]] == [True, True]
    assert [d.reason for d in detections[2:]] == ["gps_unusable_hold", "gps_unusable_hold"]


def test_exits_vehicle_after_two_slow_windows():
    state = VehicleHysteresisState(in_vehicle=True)
    state, first = step_vehicle(state, VehicleWindowInput(imu=RIDING_IMU, gps=gps(0.2)))
    assert first.value is True
    state, second = step_vehicle(state, VehicleWindowInput(imu=RIDING_IMU, gps=gps(0.1)))
    assert second.value is False
    assert second.reason == "gps_speed_hysteresis_off"
    assert state.in_vehicle is False


def test_imu_band_entry_without_gps():
    no_gps = VehicleGpsInput()
    windows = [VehicleWindowInput(imu=RIDING_IMU, gps=no_gps) for _ in range(3)]

    detections = apply_vehicle_hysteresis(windows)

    assert [d.value for d in detections] == [False, True, True]
    assert detections[1].reason == "imu_band_hysteresis_on"


def test_walking_veto_blocks_imu_entry():
    windows = [VehicleWindowInput(imu=WALKING_IMU) for _ in range(4)]

    detections = apply_vehicle_hysteresis(windows)

    assert all(d.value is False for d in detections)
    assert detections[0].reason == "imu_walking_veto"


def test_missing_imu():
    state, detection = step_vehicle(VehicleHysteresisState(), VehicleWindowInput(imu=VehicleImuInput()))
    assert detection.value is False
    assert detection.reason == "imu_missing"
    assert detection.confidence == 0.0


def test_imu_band_membership():
    assert is_imu_in_vehicle_band(RIDING_IMU)
    assert not is_imu_in_vehicle_band(WALKING_IMU)
    assert not is_imu_in_vehicle_band(VehicleImuInput())


def test_non_vehicle_confidence_grading():
    far = non_vehicle_confidence(WALKING_IMU, MotionState.WALKING)
    inside = non_vehicle_confidence(RIDING_IMU, None)
    assert inside == 0.5
    assert 0.9 < far <= 1.0
    assert non_vehicle_confidence(RIDING_IMU, MotionState.STATIC) == 0.9
