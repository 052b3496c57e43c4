# serialplot/protocol/core/types.py
YAML_TO_STRUCT: dict[str, str] = {
    "uint8": "B", "int8": "b",
    "uint16": "H", "int16": "h",
    "uint32": "I", "int32": "i",
    "float32": "f", "float64": "d",
}
