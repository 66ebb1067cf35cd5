# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Typed access to loosely-typed job parameter bags.

Job parameters arrive as a flat mapping whose field names changed across
several generations of callers. Every value is looked up through an ordered
list of synonyms and coerced to the expected type in one place, so that
command builders never deal with missing keys, empty strings or "Yes"/"No"
booleans themselves.
"""

from .resolver import (
    ParamBag,
    get_bool_param,
    get_float_param,
    get_int_param,
    get_param,
)

__all__ = [
    "ParamBag",
    "get_bool_param",
    "get_float_param",
    "get_int_param",
    "get_param",
]
