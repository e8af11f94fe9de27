"""
Analytics Package
=================
Statistical layers computed over the daily series.

Modules:
  stats        - mean / median / population SD / Pearson primitives
  anomalies    - trailing rolling baseline + z-score anomalies
  streaks      - boolean streak finder + robust (median/MAD) elevated streaks
  correlations - same-day and lagged pairwise Pearson tables
"""
