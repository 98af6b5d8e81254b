from engine.derive import derive_composite_joints
from engine.detector import DetectedLandmark, DetectorSettings, MediaPipePoseDetector, PoseDetector
from engine.export import write_result_json, write_table_csv
from engine.extract import PoseExtractionConfig, extract_pose, extract_pose_async
from engine.ingest import EmptyInput, IngestionResult, ingest_table, load_csv_file, parse_csv_text
from engine.media import MediaError, MediaSource, VideoFileSource
from engine.sampler import (
    FrameSampler,
    InitializationError,
    ProcessingCancelled,
    SamplerBusy,
    SamplerConfig,
    SamplerState,
)
from engine.series import FrameSample, JointSeries, ProcessingResult, TimeSeriesStore

__all__ = [
    "DetectedLandmark",
    "DetectorSettings",
    "EmptyInput",
    "FrameSample",
    "FrameSampler",
    "IngestionResult",
    "InitializationError",
    "JointSeries",
    "MediaError",
    "MediaPipePoseDetector",
    "MediaSource",
    "PoseExtractionConfig",
    "PoseDetector",
    "ProcessingCancelled",
    "ProcessingResult",
    "SamplerBusy",
    "SamplerConfig",
    "SamplerState",
    "TimeSeriesStore",
    "VideoFileSource",
    "derive_composite_joints",
    "extract_pose",
    "extract_pose_async",
    "ingest_table",
    "load_csv_file",
    "parse_csv_text",
    "write_result_json",
    "write_table_csv",
]
