"""UI utilities (validators, id generation, etc.)."""

from .id_generator import generate_classroom_id, generate_subject_id, generate_teacher_id

__all__ = ["generate_classroom_id", "generate_subject_id", "generate_teacher_id"]
