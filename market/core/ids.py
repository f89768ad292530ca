import uuid


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def blob_key(folder: str, ext: str = "") -> str:
    # object keys are never reused, so a released key cannot point at a new upload
    return f"{folder}/{uuid.uuid4().hex}{ext}"
