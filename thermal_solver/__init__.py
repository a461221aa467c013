"""HeatStack: Thermal Solver Package.

1D theta-method (implicit Euler / Crank-Nicolson) transient conduction
solver for multi-material stacks, with a Numba tridiagonal kernel,
fixed/flux/exchange boundary conditions and an adaptive simulation clock.
"""
