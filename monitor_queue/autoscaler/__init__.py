# monitor_queue/autoscaler/__init__.py
from .estimator import LoadSample, LoadEstimator, QueueDepthEstimator, estimate
from .scaler import ScaleAction, ScaleDecision, decide_scale
from .models import ScalingEvent, QueueStats

# JobQueue is imported from monitor_queue.autoscaler.controller to avoid a cycle with the worker package

__all__ = [
    'LoadSample',
    'LoadEstimator',
    'QueueDepthEstimator',
    'estimate',
    'ScaleAction',
    'ScaleDecision',
    'decide_scale',
    'ScalingEvent',
    'QueueStats',
]
