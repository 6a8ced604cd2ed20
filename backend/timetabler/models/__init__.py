from timetabler.models.audit_log import ScheduleAuditLog  # noqa: F401
from timetabler.models.course import Course, CourseType, RoomAffinity  # noqa: F401
from timetabler.models.elective_choice import ElectiveChoice  # noqa: F401
from timetabler.models.group_settings import LevelGroupSettings  # noqa: F401
from timetabler.models.irregular import IrregularRequirement, IrregularSchedule  # noqa: F401
from timetabler.models.room import Room, RoomType  # noqa: F401
from timetabler.models.rule import CHECKABLE_RULE_CATEGORIES, RuleCategory, SchedulingRule  # noqa: F401
from timetabler.models.schedule_version import ScheduleVersion  # noqa: F401
from timetabler.models.student import Student  # noqa: F401
