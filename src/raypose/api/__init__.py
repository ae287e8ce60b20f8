from raypose.api.correspondence_io import (
    CorrespondenceSet,
    load_correspondences,
    save_correspondences,
    save_solutions,
    solutions_to_dict,
)

__all__ = [
    "CorrespondenceSet",
    "load_correspondences",
    "save_correspondences",
    "save_solutions",
    "solutions_to_dict",
]
