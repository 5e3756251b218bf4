"""
Grid-charging controller package for a Solis hybrid inverter.

Polls inverter telemetry through the signed SolisCloud API and toggles the
"allow grid charging" control parameter using a debounce and hysteresis
policy, so the battery only recharges from a grid that has been stable for a
while and never oscillates around its charge thresholds.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""
