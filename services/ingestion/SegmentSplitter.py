"""Fixed-window text segmentation for embedding."""

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentSegment, estimate_tokens, make_record_id

SEGMENT_SIZE = 1000     # characters per segment
SEGMENT_OVERLAP = 200   # characters shared by consecutive segments


class SegmentSplitter:
    """Splits document text into overlapping, ordered segments.

    Splitting is pure: the same text and settings always yield the same
    segments with the same ids.
    """

    def __init__(self, helper_config: HelperConfig | None = None, segment_size: int | None = None, overlap: int | None = None) -> None:
        if segment_size is None:
            segment_size = helper_config.get_int_val("SEGMENT_SIZE", default=SEGMENT_SIZE, minimum=1) if helper_config else SEGMENT_SIZE
        if overlap is None:
            overlap = helper_config.get_int_val("SEGMENT_OVERLAP", default=SEGMENT_OVERLAP, minimum=0) if helper_config else SEGMENT_OVERLAP
        if segment_size <= 0:
            raise ValueError(f"segment_size must be positive, got {segment_size}.")
        if overlap < 0 or overlap >= segment_size:
            raise ValueError(f"overlap must be in [0, segment_size), got {overlap}.")
        self.segment_size = segment_size
        self.overlap = overlap

    def split_text(self, text: str, document_id: str, document_name: str) -> list[DocumentSegment]:
        """Split a document's text into overlapping segments.

        Args:
            text (str): The full document text.
            document_id (str): Identifier of the source document.
            document_name (str): Human-readable name of the document.

        Returns:
            list[DocumentSegment]: Segments ordered by sequence_index, starting at 0.
                Empty or whitespace-only text yields an empty list.
        """
        if not text or not text.strip():
            return []

        segments: list[DocumentSegment] = []
        start = 0
        while start < len(text):
            end = min(start + self.segment_size, len(text))
            piece = text[start:end]
            index = len(segments)
            segments.append(DocumentSegment(
                id=make_record_id(document_id, index),
                document_id=document_id,
                document_name=document_name,
                sequence_index=index,
                text=piece,
                approx_token_count=estimate_tokens(piece),
            ))
            if end >= len(text):
                break
            start = end - self.overlap
        return segments
