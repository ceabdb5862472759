"""
Table registry shared by the store implementations.

Describes what the in-memory store must emulate and what the SQL store must
publish: id generation, natural unique keys, store-assigned timestamps and
foreign-key cascades from the parent course.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: Tuple[str, ...]
    id_column: str = "id"
    id_kind: str = "uuid"  # "uuid" | "serial" | "natural"
    unique_keys: Tuple[Tuple[str, ...], ...] = ()
    timestamps: Tuple[str, ...] = ()  # assigned on insert when not supplied
    touch: Tuple[str, ...] = ()  # reassigned on every write
    parent: Optional[Tuple[str, str, str]] = None  # (parent_table, parent_column, child_column)

    def all_unique_keys(self) -> Tuple[Tuple[str, ...], ...]:
        return ((self.id_column,),) + self.unique_keys


_COURSE_FK = ("courses", "code", "course_code")

TABLES: Dict[str, TableSpec] = {
    spec.name: spec
    for spec in (
        TableSpec(
            name="courses",
            columns=("code", "title", "time_slot", "room", "password_hash", "created_by", "created_at"),
            id_column="code",
            id_kind="natural",
            timestamps=("created_at",),
        ),
        TableSpec(
            name="sa_profiles",
            columns=("user_id", "display_name", "updated_at"),
            id_column="user_id",
            id_kind="natural",
            timestamps=("updated_at",),
            touch=("updated_at",),
        ),
        TableSpec(
            name="messages",
            columns=(
                "id", "course_code", "client_token", "student_user_id", "role", "body",
                "attachment_url", "attachment_type", "attachment_name",
                "sa_user_id", "sa_display_name", "parent_message_id", "created_at",
            ),
            id_kind="serial",
            timestamps=("created_at",),
            parent=_COURSE_FK,
        ),
        TableSpec(
            name="calls",
            columns=(
                "id", "course_code", "client_token", "student_user_id",
                "seat_text", "handled_at", "created_at",
            ),
            id_kind="serial",
            timestamps=("created_at",),
            parent=_COURSE_FK,
        ),
        TableSpec(
            name="thread_locks",
            columns=("id", "course_code", "client_token", "sa_user_id", "sa_name", "locked_at"),
            unique_keys=(("course_code", "client_token"),),
            timestamps=("locked_at",),
        ),
        TableSpec(
            name="thread_reads",
            columns=("id", "course_code", "client_token", "reader_role", "last_read_at"),
            unique_keys=(("course_code", "client_token", "reader_role"),),
        ),
        TableSpec(
            name="thread_pins",
            columns=("id", "course_code", "client_token", "pinned_at"),
            unique_keys=(("course_code", "client_token"),),
            timestamps=("pinned_at",),
            parent=_COURSE_FK,
        ),
        TableSpec(
            name="student_aliases",
            columns=("id", "course_code", "client_token", "alias_number"),
            unique_keys=(
                ("course_code", "client_token"),
                ("course_code", "alias_number"),
            ),
            parent=_COURSE_FK,
        ),
        TableSpec(
            name="event_log",
            columns=(
                "id", "event_type", "entity_type", "entity_key",
                "course_code", "user_id", "payload", "created_at",
            ),
            timestamps=("created_at",),
        ),
    )
}


def get_table_spec(table: str) -> TableSpec:
    try:
        return TABLES[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table}") from None


def children_of(table: str) -> Tuple[TableSpec, ...]:
    """Tables whose rows are removed by cascade when a row of `table` is deleted."""
    return tuple(spec for spec in TABLES.values() if spec.parent and spec.parent[0] == table)
