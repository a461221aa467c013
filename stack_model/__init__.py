"""HeatStack: Stack Model Package.

Materials, layered stacks and their non-uniform grids, thickness profiles
along the surface, and the YAML configuration loader.
"""
