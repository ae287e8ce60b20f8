"""
Closed-form absolute pose for generalized cameras (UPnP).

Rays may have distinct origins (multi-camera rigs) or share one (pinhole).
The pose is recovered from the global minima of a quadratic form over the
quadratic monomials of the rotation quaternion.
"""

from raypose.upnp.cost import (
    DegenerateConfigurationError,
    UpnpCostParameters,
    UpnpInputError,
    compute_cost_matrices,
    compute_h_matrix_and_outer_products,
    compute_helper_matrices,
    compute_upnp_cost_parameters,
    evaluate_upnp_cost,
)
from raypose.upnp.eigen import EigenSolver, GeneralEigenSolver, SymmetricEigenSolver
from raypose.upnp.solver import UpnpOptions, UpnpSolutions, reconstruct_pose, solve_constrained_quadratic, solve_upnp

__all__ = [
    "DegenerateConfigurationError",
    "EigenSolver",
    "GeneralEigenSolver",
    "SymmetricEigenSolver",
    "UpnpCostParameters",
    "UpnpInputError",
    "UpnpOptions",
    "UpnpSolutions",
    "compute_cost_matrices",
    "compute_h_matrix_and_outer_products",
    "compute_helper_matrices",
    "compute_upnp_cost_parameters",
    "evaluate_upnp_cost",
    "reconstruct_pose",
    "solve_constrained_quadratic",
    "solve_upnp",
]
