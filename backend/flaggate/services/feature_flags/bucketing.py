"""
稳定分桶
MD5(flag_key:subject_id) 取前 4 字节（大端无符号整数）对 100 取模，得到 [0, 100) 的桶号。
同一开关下主体的桶号固定，提高灰度百分比只会扩大命中人群。
"""

import hashlib

BUCKET_COUNT = 100


def compute_cohort(flag_key: str, subject_id: str) -> int:
    digest = hashlib.md5(f"{flag_key}:{subject_id}".encode("utf-8")).digest()  # nosec B324
    return int.from_bytes(digest[:4], "big") % BUCKET_COUNT
