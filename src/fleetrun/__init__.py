from .model import Action, Job, LogRecord, LogStatus, Machine, Pipeline, Step
from .registry import Registry, load_registry
from .logstore import LogStore
from .pipeline import build_pipeline
from .runner import PipelineRunner
from .tail import LogTailer
from .orchestrator import Orchestrator

__all__ = [
    "Action", "Job", "LogRecord", "LogStatus", "Machine", "Pipeline", "Step",
    "Registry", "load_registry", "LogStore", "build_pipeline", "PipelineRunner",
    "LogTailer", "Orchestrator",
]
