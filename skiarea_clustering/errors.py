"""Exceptions raised by the clustering pipeline.

Data-quality outcomes (no members found, ambiguous duplicates) are not errors;
they are handled by removal policies. These exceptions signal contract
violations and abort the run.
"""


class ClusteringError(Exception):
    """Base class for clustering failures."""


class GeometryContractError(ClusteringError):
    """A geometry did not have the shape an operation requires.

    Raised, for example, when a fixed polygon search is attempted with a
    ski area whose geometry is not a polygon.
    """


class FeaturePreparationError(ClusteringError):
    """A raw feature could not be turned into a map object."""


class StoreContractError(ClusteringError):
    """The object store returned data that breaks a clustering invariant."""
