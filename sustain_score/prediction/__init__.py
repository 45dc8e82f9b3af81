"""Prediction cascade: model -> heuristic -> category average.

Modules
-------
result           — PredictionResult, Confidence, PredictionMethod
heuristic        — HeuristicProfile: versioned weights + calibration anchors
category_average — static per-category averages and substring lookup
orchestrator     — PredictionOrchestrator and PredictionSettings

Standard library only (runs alongside the serving engine).
"""
