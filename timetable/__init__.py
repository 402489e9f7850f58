"""School timetable domain: model, grid conversion, validation and generation."""

from .converter import (
	apply_display_rows,
	convert_to_display_format,
	display_rows_to_grid,
	generate_empty_timetable,
	split_by_class,
	teacher_schedule,
)
from .generator import build_problem, solve_school_timetable
from .models import (
	AssignmentRestriction,
	ClassRef,
	Classroom,
	DisplayCell,
	PeriodRow,
	SchoolSettings,
	Subject,
	Teacher,
	Violation,
)
from .validator import (
	add_violation_info,
	calculate_compliance_rate,
	fill_empty_slots,
	move_slot,
	validate_school_wide_timetable_constraints,
	validate_timetable_constraints,
	validate_timetable_constraints_enhanced,
)

__all__ = [
	"apply_display_rows",
	"convert_to_display_format",
	"display_rows_to_grid",
	"generate_empty_timetable",
	"split_by_class",
	"teacher_schedule",
	"build_problem",
	"solve_school_timetable",
	"AssignmentRestriction",
	"ClassRef",
	"Classroom",
	"DisplayCell",
	"PeriodRow",
	"SchoolSettings",
	"Subject",
	"Teacher",
	"Violation",
	"add_violation_info",
	"calculate_compliance_rate",
	"fill_empty_slots",
	"move_slot",
	"validate_school_wide_timetable_constraints",
	"validate_timetable_constraints",
	"validate_timetable_constraints_enhanced",
]
