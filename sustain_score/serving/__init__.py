"""Serving runtime: dependency-free inference over an exported artifact.

Modules
-------
artifact — architecture constants, artifact validation and parsing
engine   — InferenceEngine: z-score, 3 x (affine, batch norm, ReLU), sigmoid
cache    — WeightCache protocol with in-memory and SQLite implementations
loader   — ModelLoader: single idempotent load guarded by a lock

Standard library only.  ``sustain-score validate-sync`` fails the build if
any module here imports a tensor library or defines training code.
"""
