"""Feature encoding package for the sustainability score.

Modules
-------
tables   — static lookup tables (category scores, food groups, keyword sets)
encoder  — encode(record) -> FeatureVector; the 40-feature contract
local    — adapter from hand-entered product fields to a raw record

Standard library only: imported by both the training pipeline and the
serving runtime.
"""
