"""Gateway extension transformer and Lambda integration targets.

:func:`transform_openapi` prepares the resolved document for the API
gateway:

* every operation mapped to a deployable unit gets an
  ``x-amazon-apigateway-integration`` extension pointing at the unit's
  function;
* operations without an operationId or without a unit are removed (with a
  warning), and so are path items left without operations;
* every ``discriminator`` is removed after its property has been made
  required on the object schema that declares it. The gateway's request
  validator mishandles discriminators, while the dispatcher still decodes
  tagged unions by the original schema.

The input document is never modified.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from specdispatch.exceptions import GenerationError, OperationIdError
from specdispatch.models import HTTPMethod, LambdaArnConfig
from specdispatch.parser.reference import is_reference


logger = logging.getLogger(__name__)

INTEGRATION_EXTENSION = "x-amazon-apigateway-integration"
GATEWAY_SPEC_FILENAME = "openapi-apigw.yaml"

_INVOCATION_PREFIX = "lambda:path/2015-03-31/functions/"


@dataclass(frozen=True)
class LambdaArn:
    """The function a deployable unit's operations are integrated with.

    Use :meth:`cloud_formation` when the gateway spec is embedded in a
    CloudFormation/SAM template (the ARN is resolved at deploy time through
    ``Fn::Sub``), or :meth:`known` for an existing function.

    Example::

        LambdaArn.cloud_formation("PetApiFunction.Alias")
        LambdaArn.known("us-east-1", "123456789012", "us-east-1", "pet-api", alias="live")
    """

    logical_id: Optional[str] = None
    apigw_region: Optional[str] = None
    account_id: Optional[str] = None
    function_region: Optional[str] = None
    function_name: Optional[str] = None
    alias: Optional[str] = None

    @classmethod
    def cloud_formation(cls, logical_id: str) -> LambdaArn:
        """Reference a function (or alias, or version) by its template logical ID."""
        return cls(logical_id=logical_id)

    @classmethod
    def known(
        cls,
        apigw_region: str,
        account_id: str,
        function_region: str,
        function_name: str,
        alias: Optional[str] = None,
    ) -> LambdaArn:
        """Reference an existing function, optionally through an alias or version."""
        return cls(
            apigw_region=apigw_region,
            account_id=account_id,
            function_region=function_region,
            function_name=function_name,
            alias=alias,
        )

    @classmethod
    def from_config(cls, config: LambdaArnConfig) -> LambdaArn:
        if config.logical_id is not None:
            return cls.cloud_formation(config.logical_id)
        return cls.known(
            config.apigw_region or "",
            config.account_id or "",
            config.function_region or "",
            config.function_name or "",
            alias=config.alias,
        )

    def invocation_uri(self) -> Union[str, dict[str, str]]:
        """Return the integration ``uri``: an ``Fn::Sub`` mapping or a literal ARN."""
        if self.logical_id is not None:
            return {
                "Fn::Sub": (
                    f"arn:aws:apigateway:${{AWS::Region}}:{_INVOCATION_PREFIX}"
                    f"${{{self.logical_id}}}/invocations"
                )
            }
        alias = f":{self.alias}" if self.alias else ""
        return (
            f"arn:aws:apigateway:{self.apigw_region}:{_INVOCATION_PREFIX}"
            f"arn:aws:lambda:{self.function_region}:{self.account_id}"
            f":function:{self.function_name}{alias}/invocations"
        )


def integration(arn: LambdaArn) -> dict[str, Any]:
    """Return the ``x-amazon-apigateway-integration`` value for *arn*."""
    return {"httpMethod": "POST", "type": "aws_proxy", "uri": arn.invocation_uri()}


def transform_openapi(
    document: dict[str, Any], unit_by_operation: Mapping[str, Any]
) -> dict[str, Any]:
    """Return the gateway-facing copy of *document*.

    Args:
        document: The inlined (and named) OpenAPI document.
        unit_by_operation: Maps each operationId served by this deployment
            to its deployable unit (anything with an ``arn`` attribute) or
            directly to a :class:`LambdaArn`.

    Returns:
        A new document with integrations added and unmapped operations,
        empty path items and discriminators removed.

    Raises:
        OperationIdError: If two operations share an operationId.
        GenerationError: If a discriminator names a property its object
            schema does not declare, or sits on a non-object schema.
    """
    result = copy.deepcopy(document)
    components = result.get("components")
    if isinstance(components, dict):
        _transform_components(components)

    paths = result.get("paths")
    if not isinstance(paths, dict):
        return result

    seen: set[str] = set()
    for path in list(paths):
        path_item = paths[path]
        if not isinstance(path_item, dict) or is_reference(path_item):
            continue
        _transform_path_item(path_item)

        for method in HTTPMethod:
            operation = path_item.get(method.value)
            if not isinstance(operation, dict):
                continue
            label = f"{method.value.upper()} {path}"
            operation_id = operation.get("operationId")
            if operation_id is None:
                logger.warning("removing endpoint without operation_id: %s", label)
                del path_item[method.value]
                continue
            if operation_id in seen:
                raise OperationIdError(f"duplicate operation_id `{operation_id}`")
            seen.add(operation_id)

            target = unit_by_operation.get(operation_id)
            if target is None:
                logger.warning(
                    "removing endpoint not mapped to any API: %s (%s)", label, operation_id
                )
                del path_item[method.value]
                continue
            arn = target if isinstance(target, LambdaArn) else target.arn
            operation[INTEGRATION_EXTENSION] = integration(arn)

        if not any(method.value in path_item for method in HTTPMethod):
            del paths[path]

    return result


# ------------------------------------------------------------------ #
# Document walk
# ------------------------------------------------------------------ #


def _items(mapping: Any) -> list[Any]:
    if not isinstance(mapping, dict):
        return []
    return [value for value in mapping.values() if isinstance(value, dict) and not is_reference(value)]


def _transform_components(components: dict[str, Any]) -> None:
    for response in _items(components.get("responses")):
        _transform_response(response)
    for parameter in _items(components.get("parameters")):
        _transform_parameter(parameter)
    for body in _items(components.get("requestBodies")):
        _transform_content(body)
    for header in _items(components.get("headers")):
        _transform_parameter(header)
    for schema in _items(components.get("schemas")):
        _transform_schema(schema)
    for callback in _items(components.get("callbacks")):
        for path_item in _items(callback):
            _transform_path_item(path_item)


def _transform_path_item(path_item: dict[str, Any]) -> None:
    for method in HTTPMethod:
        operation = path_item.get(method.value)
        if isinstance(operation, dict):
            _transform_operation(operation)
    for parameter in path_item.get("parameters") or []:
        if isinstance(parameter, dict) and not is_reference(parameter):
            _transform_parameter(parameter)


def _transform_operation(operation: dict[str, Any]) -> None:
    for parameter in operation.get("parameters") or []:
        if isinstance(parameter, dict) and not is_reference(parameter):
            _transform_parameter(parameter)
    body = operation.get("requestBody")
    if isinstance(body, dict) and not is_reference(body):
        _transform_content(body)
    for response in _items(operation.get("responses")):
        _transform_response(response)


def _transform_parameter(parameter: dict[str, Any]) -> None:
    schema = parameter.get("schema")
    if isinstance(schema, dict) and not is_reference(schema):
        _transform_schema(schema)
    _transform_content(parameter)


def _transform_response(response: dict[str, Any]) -> None:
    for header in _items(response.get("headers")):
        _transform_parameter(header)
    _transform_content(response)


def _transform_content(owner: dict[str, Any]) -> None:
    for media_type in _items(owner.get("content")):
        schema = media_type.get("schema")
        if isinstance(schema, dict) and not is_reference(schema):
            _transform_schema(schema)


def _transform_schema(schema: dict[str, Any]) -> None:
    for prop in _items(schema.get("properties")):
        _transform_schema(prop)
    for key in ("additionalProperties", "items", "not"):
        child = schema.get(key)
        if isinstance(child, dict) and not is_reference(child):
            _transform_schema(child)
    for key in ("allOf", "oneOf", "anyOf"):
        for child in schema.get(key) or []:
            if isinstance(child, dict) and not is_reference(child):
                _transform_schema(child)

    discriminator = schema.pop("discriminator", None)
    if not isinstance(discriminator, dict) or "type" not in schema:
        return
    if schema["type"] != "object":
        raise GenerationError(
            f"discriminators are only allowed on object types (found on `{schema['type']}` schema)"
        )
    property_name = discriminator.get("propertyName")
    if property_name not in (schema.get("properties") or {}):
        raise GenerationError(
            f"discriminator property `{property_name}` does not exist in object type "
            f"with properties {sorted(schema.get('properties') or {})}"
        )
    required = schema.setdefault("required", [])
    if property_name not in required:
        required.append(property_name)
