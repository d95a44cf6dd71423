"""
Dynamic visualisation elements bound to a cut-able dataset.
"""

from .collection import (
    ELEMENT_VARIANTS,
    ElementCollection,
    element_class,
)
from .config import (
    options,
)
from .connection import (
    Connection,
    ConnectionCache,
    ConnectionKey,
)
from .dataset import (
    Dataset,
    DatasetError,
    Field,
    FieldCatalog,
)
from .dimension import (
    DimensionSlots,
    ElementDimension,
)
from .element import (
    DynamicElement,
    ElementConfigError,
    ElementSettings,
)
from .elements import (
    DimensionalElement,
    MeasureElement,
    StaticElement,
)
from .formatting import (
    FormatError,
    number_formatter,
)
from .signals import (
    Signal,
    Subscription,
)
from .transport import (
    HttpTransport,
    IbisTransport,
    Transport,
    TransportError,
)

__all__ = [
    "ElementCollection",
    "ELEMENT_VARIANTS",
    "element_class",
    "DynamicElement",
    "DimensionalElement",
    "MeasureElement",
    "StaticElement",
    "ElementSettings",
    "ElementConfigError",
    "ElementDimension",
    "DimensionSlots",
    "Dataset",
    "DatasetError",
    "Field",
    "FieldCatalog",
    "Connection",
    "ConnectionCache",
    "ConnectionKey",
    "Transport",
    "HttpTransport",
    "IbisTransport",
    "TransportError",
    "Signal",
    "Subscription",
    "FormatError",
    "number_formatter",
    "options",
]

__version__ = "0.1.0"
