from raypose import meta
from raypose.api import load_correspondences, save_correspondences, save_solutions
from raypose.upnp import UpnpInputError, UpnpOptions, UpnpSolutions, evaluate_upnp_cost, solve_upnp

__all__ = [
    "meta",
    "UpnpInputError",
    "UpnpOptions",
    "UpnpSolutions",
    "evaluate_upnp_cost",
    "solve_upnp",
    "load_correspondences",
    "save_correspondences",
    "save_solutions",
]
