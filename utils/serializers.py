from datetime import date, datetime
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel


def _to_json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return value


def model_to_dict(obj) -> Dict[str, Any]:
    """Column values of a SQLAlchemy model, JSON-ready."""
    return {column.key: _to_json_value(getattr(obj, column.key)) for column in obj.__mapper__.column_attrs}


def models_to_list(objs: Iterable) -> List[Dict[str, Any]]:
    return [model_to_dict(o) for o in objs]


def to_json_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _to_json_value(value) for key, value in data.items()}
