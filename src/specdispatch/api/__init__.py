"""Operation compiler: parameter, body and response plans plus auth requirements.

Typical usage::

    from specdispatch.api import compile_operation

    plans = [compile_operation(info, compiler) for info in operations]
"""

from specdispatch.api.body import body_plan, request_body_plan
from specdispatch.api.operation import compile_operation
from specdispatch.api.parameter import parameter_plan, parameter_plans
from specdispatch.api.response import response_variants, status_variant_name

__all__ = [
    "body_plan",
    "compile_operation",
    "parameter_plan",
    "parameter_plans",
    "request_body_plan",
    "response_variants",
    "status_variant_name",
]
