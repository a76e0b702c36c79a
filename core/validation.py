"""Turn pydantic validation failures into the ledger's ValidationError."""

from typing import Any, TypeVar

import pydantic

from core.exceptions import ValidationError

M = TypeVar("M", bound=pydantic.BaseModel)


def parse(model_cls: type[M], data: M | dict[str, Any]) -> M:
    """
    Validate `data` into `model_cls`.

    Already-built instances pass through. Failures raise ValidationError whose
    `errors` list carries field path, message and offending value per problem.
    """
    if isinstance(data, model_cls):
        return data

    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "value": err.get("input"),
            }
            for err in e.errors(include_url=False)
        ]
        raise ValidationError(f"Invalid {model_cls.__name__}", errors=errors) from e
