"""
IRScope core: pure numeric and tonal-feature helpers.

1. numeric.py         - shared safe-number / clamp / dot policy
2. metrics_adapter.py - boundary normalization of historical field names
3. tonal_engine.py    - band energies -> percent / shape dB / tilt / smoothness
"""
