"""LST estimators: composite product, physical emissivity model, toolbox."""

from suhi_pipeline.estimators.base import LstEstimator
from suhi_pipeline.estimators.composite import CompositeProductEstimator, composite_lst
from suhi_pipeline.estimators.physical import PhysicalEstimator
from suhi_pipeline.estimators.toolbox import EmissivityToolbox, LstToolbox, ToolboxEstimator

__all__ = [
    "CompositeProductEstimator",
    "EmissivityToolbox",
    "LstEstimator",
    "LstToolbox",
    "PhysicalEstimator",
    "ToolboxEstimator",
    "composite_lst",
]
