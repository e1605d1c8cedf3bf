"""ivp_engine modular initial value problem solver package."""

from __future__ import annotations

from .config import ErrorControl, OutputMode, SolveResult, SolverConfig, solve_ivp
from .error_control import (
    ControllerHistory,
    EmbeddedController,
    EmbeddedErrorEstimator,
    InitialStepSizeSelector,
    PIController,
    PredictiveController,
    StepController,
    StepDecision,
    StepDoublingController,
    StepDoublingErrorEstimator,
)
from .errors import (
    AssemblyError,
    CircularDependencyError,
    ConfigurationError,
    IVPEngineError,
    LinearSolveFailure,
    PropertyNotFoundError,
    PropertyTypeError,
    SolverRunningError,
    StepLimitError,
    UnsatisfiedRequirementError,
)
from .kernels import ExplicitRungeKutta, ForwardEuler, IMEXRungeKutta, SteppingKernel
from .ode import IVP, ODE
from .output import (
    AllPointsWriter,
    CompoundSink,
    InterpolatingWriter,
    MemorySink,
    ProgressReporter,
    SolutionSink,
    TextFileSink,
)
from .pipeline import Assembly, Module, ModuleDecorator, assemble
from .properties import PropertyBag, PropertyKey
from .schemes import AdditiveTableau, ButcherTableau, Scheme
from .solver import (
    ConstantStepSolver,
    EmbeddedErrorSolver,
    Solver,
    StepDoublingSolver,
    SymmetricVariableStepSolver,
)
from .symplectic import (
    AdaptiveArenstorfStormerVerlet,
    ArenstorfStormerVerlet,
    StormerVerlet,
)

__all__ = [
    "IVP",
    "ODE",
    "AdaptiveArenstorfStormerVerlet",
    "AdditiveTableau",
    "AllPointsWriter",
    "ArenstorfStormerVerlet",
    "Assembly",
    "AssemblyError",
    "ButcherTableau",
    "CircularDependencyError",
    "CompoundSink",
    "ConfigurationError",
    "ConstantStepSolver",
    "ControllerHistory",
    "EmbeddedController",
    "EmbeddedErrorEstimator",
    "EmbeddedErrorSolver",
    "ErrorControl",
    "ExplicitRungeKutta",
    "ForwardEuler",
    "IMEXRungeKutta",
    "IVPEngineError",
    "InitialStepSizeSelector",
    "InterpolatingWriter",
    "LinearSolveFailure",
    "MemorySink",
    "Module",
    "ModuleDecorator",
    "OutputMode",
    "PIController",
    "PredictiveController",
    "ProgressReporter",
    "PropertyBag",
    "PropertyKey",
    "PropertyNotFoundError",
    "PropertyTypeError",
    "Scheme",
    "SolutionSink",
    "SolveResult",
    "Solver",
    "SolverConfig",
    "SolverRunningError",
    "StepController",
    "StepDecision",
    "StepDoublingController",
    "StepDoublingErrorEstimator",
    "StepDoublingSolver",
    "StepLimitError",
    "SteppingKernel",
    "StormerVerlet",
    "SymmetricVariableStepSolver",
    "TextFileSink",
    "UnsatisfiedRequirementError",
    "assemble",
    "solve_ivp",
]

__version__ = "0.1.0"
