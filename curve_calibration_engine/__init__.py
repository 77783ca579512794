"""
Curve Calibration Engine

Modules:
- curves: interpolated zero rate curve + QC report
- templates: curve templates and per-curve calibration data
- provider: rates provider + provider template for one calibration group
- instruments: deposits, FRAs, swaps and their par spreads
- measures: kind -> (value, sensitivity) calculator
- functions: value / derivative functions handed to the root finder
- root_finding: Newton and Broyden vector root finders
- jacobian: building blocks, transition matrix, bundle
- calibrator: group by group calibration
- nodes: quote driven curve nodes and group definitions
- scenarios: quote bump recalibration
- config / errors / utils: settings, exceptions, day count + schedule helpers
"""
from .calibrator import CurveCalibrator, calibrate, calibration_report
from .config import DEFAULT_ROOT_FINDER_CONFIG, RootFinderConfig
from .errors import (
    CalibrationError,
    ConfigurationError,
    ConvergenceError,
    DimensionError,
    UnsupportedInstrumentError,
)
from .jacobian import CurveBuildingBlockBundle, CurveParameterSize, JacobianCalibrationMatrix
from .measures import DEFAULT_MEASURES, CalibrationMeasures
from .provider import RatesProvider, RatesProviderTemplate
from .templates import CalibrationCurveData, InterpolatedCurveTemplate
