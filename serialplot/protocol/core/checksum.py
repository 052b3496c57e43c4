# serialplot/protocol/core/checksum.py
def xor_checksum(cmd_id: int, payload: bytes) -> int:
    """XOR of CMD, both LEN bytes (little-endian) and every payload byte."""
    length = len(payload)
    chk = (cmd_id & 0xFF) ^ (length & 0xFF) ^ ((length >> 8) & 0xFF)
    for b in payload:
        chk ^= b
    return chk & 0xFF
