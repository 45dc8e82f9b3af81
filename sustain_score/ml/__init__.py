"""
Offline training layer: corpus loading, the torch MLP, export and evaluation.

Modules
-------
architecture     : Training-side layer widths, dropout and format version.
                   Plain constants; compared against the serving copy by the
                   sync validator.
dataset          : Corpus loading (JSON / JSONL / Parquet), label filtering,
                   encoding, seeded splits and the z-score ``FeatureScaler``.
network          : ``SustainabilityNet`` torch module.
trainer          : ``train_from_records()`` / ``train_from_examples()``;
                   early stopping, divergence and cancellation.
metrics          : ``RegressionMetrics`` (MSE, RMSE, MAE, R², tolerance bands).
export           : Artifact / metadata / test-set documents and writers.
evaluate         : Held-out evaluation through the serving ``InferenceEngine``.
category_scores  : Per-category mean-score table built from a corpus.

Only this package (and the CLI / pipeline stages that call it) imports torch,
numpy or pyarrow.
"""
