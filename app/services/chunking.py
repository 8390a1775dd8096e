from typing import List


def chunk_text(text: str, chunk_size: int, overlap: int) -> List[str]:
    """Split text into windows of `chunk_size` chars, each sharing `overlap` chars with the previous one."""
    text = (text or "").strip()
    if not text:
        return []
    if chunk_size <= 0 or len(text) <= chunk_size:
        return [text]

    step = max(chunk_size - max(overlap, 0), 1)
    chunks = []
    for start in range(0, len(text), step):
        chunks.append(text[start: start + chunk_size])
        if start + chunk_size >= len(text):
            break
    return chunks
