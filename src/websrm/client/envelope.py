"""
Response envelope parsing

WEB-SRM responses wrap their payload in one operation-result object
(retourCertif, retourTrans, retourUtil, ...). Error lists can appear at
any depth and may be absent entirely on success.
"""

from typing import Any, Dict, List, Optional

from websrm.models.enrolment import ErrorRecord


ERROR_LIST_KEY = "listErr"


def collect_errors(payload: Any) -> List[ErrorRecord]:
    """
    Gather every listErr entry of a response, in document order

    Args:
        payload: Decoded JSON body (any shape)

    Returns:
        ErrorRecord list, empty when no listErr is present
    """
    errors: List[ErrorRecord] = []
    _walk(payload, errors)
    return errors


def _walk(node: Any, errors: List[ErrorRecord]) -> None:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == ERROR_LIST_KEY:
                if isinstance(value, list):
                    errors.extend(ErrorRecord.from_wire(item) for item in value)
                elif value:
                    errors.append(ErrorRecord.from_wire(value))
            else:
                _walk(value, errors)
    elif isinstance(node, list):
        for item in node:
            _walk(item, errors)


def operation_result(payload: Any, key: str) -> Dict[str, Any]:
    """
    Return the named operation-result object (e.g. retourCertif)

    Falls back to the top-level object when the server answers without the
    wrapper, and to an empty dict when the body is not an object.
    """
    if not isinstance(payload, dict):
        return {}
    result = payload.get(key)
    if isinstance(result, dict):
        return result
    return payload


def text_field(obj: Dict[str, Any], key: str) -> Optional[str]:
    """Non-empty string value of a field, or None"""
    value = obj.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None
