"""HeatStack: Simulation Package.

Outer-layer thickness optimization and the per-slice simulation runner.
"""
