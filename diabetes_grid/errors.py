"""Exception taxonomy for the model comparison grid pipeline."""


class GridPipelineError(Exception):
    """Base class for all pipeline errors."""


class SchemaError(GridPipelineError):
    """Input table is missing a required column or a column has the wrong type."""


class ConfigError(GridPipelineError):
    """Invalid grid resolution, hyperparameter, formula or configuration file."""


class AdapterContractError(GridPipelineError):
    """A model adapter returned predictions that violate the uniform contract."""


class AlignmentError(GridPipelineError):
    """Predictions for a model do not line up with the grid coordinates."""
