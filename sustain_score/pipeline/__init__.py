"""
Audited pipeline stages.

Modules
-------
base    : PipelineStage ABC — RunMetadata lifecycle and persistence.
stages  : TrainStage, EvaluateStage, SyncCheckStage, CategoryScoresStage.
"""
