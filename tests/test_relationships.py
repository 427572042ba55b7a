"""Tests for relationship inference, naming and foreign key validation."""

import pytest

from schema_bridge.discovery.naming import (
    pluralize,
    relationship_name,
    reverse_relationship_name,
    to_camel_case,
)
from schema_bridge.discovery.relationships import RelationshipDiscovery
from schema_bridge.schema.models import (
    ColumnInfo,
    ForeignKeyInfo,
    RelationshipKind,
    TableInfo,
)


def _table(name: str, columns: list[str], pk: list[str] | None = None, fks=()) -> TableInfo:
    pk = pk if pk is not None else ["id"]
    return TableInfo(
        name=name,
        columns=[
            ColumnInfo(name=c, type="integer", nullable=c not in pk, is_primary_key=c in pk)
            for c in columns
        ],
        primary_key=pk,
        foreign_keys=[
            ForeignKeyInfo(
                name=f"fk_{name}_{column}",
                column=column,
                referenced_table=ref_table,
                referenced_column=ref_column,
            )
            for column, ref_table, ref_column in fks
        ],
    )


@pytest.fixture
def blog_tables() -> list[TableInfo]:
    return [
        _table("users", ["id", "name"]),
        _table("posts", ["id", "author_id", "title"], fks=[("author_id", "users", "id")]),
        _table("tags", ["id", "label"]),
        _table(
            "post_tags",
            ["post_id", "tag_id"],
            pk=["post_id", "tag_id"],
            fks=[("post_id", "posts", "id"), ("tag_id", "tags", "id")],
        ),
    ]


# ------------------------------------------------------------------
# Naming
# ------------------------------------------------------------------


class TestNaming:
    """Relationship naming helpers."""

    def test_to_camel_case(self) -> None:
        assert to_camel_case("user_roles") == "userRoles"
        assert to_camel_case("Order") == "order"
        assert to_camel_case("line-item") == "lineItem"
        assert to_camel_case("") == ""

    @pytest.mark.parametrize(
        "word, plural",
        [
            ("user", "users"),
            ("category", "categories"),
            ("day", "days"),
            ("box", "boxes"),
            ("branch", "branches"),
            ("class", "classes"),
            ("users", "users"),
            ("statuses", "statuses"),
        ],
    )
    def test_pluralize(self, word: str, plural: str) -> None:
        assert pluralize(word) == plural

    def test_relationship_name_strips_id_suffix(self) -> None:
        assert relationship_name("author_id") == "author"
        assert relationship_name("parentId") == "parent"
        assert relationship_name("owner") == "owner"

    def test_reverse_name_pluralizes_table(self) -> None:
        assert reverse_relationship_name("order_item") == "orderItems"

    def test_reverse_name_disambiguated_by_column(self) -> None:
        assert reverse_relationship_name("message", "sender_id") == "messagesBySender"


# ------------------------------------------------------------------
# Forward and reverse relationships
# ------------------------------------------------------------------


class TestDiscoverRelationships:
    """One-to-many / many-to-one inference from foreign keys."""

    def test_foreign_key_to_primary_key_is_many_to_one(self) -> None:
        tables = [
            _table("users", ["id"]),
            _table("posts", ["id", "author_id"], fks=[("author_id", "users", "id")]),
        ]
        relationships = RelationshipDiscovery().discover_relationships(tables)

        forward = [r for r in relationships if r.from_table == "posts"]
        reverse = [r for r in relationships if r.from_table == "users"]
        assert len(forward) == 1 and len(reverse) == 1
        assert forward[0].kind is RelationshipKind.MANY_TO_ONE
        assert forward[0].name == "author"
        assert reverse[0].kind is RelationshipKind.ONE_TO_MANY
        assert reverse[0].name == "posts"
        assert (reverse[0].from_column, reverse[0].to_table, reverse[0].to_column) == (
            "id", "posts", "author_id",
        )

    def test_foreign_key_to_non_key_column_is_one_to_many(self) -> None:
        tables = [
            _table("users", ["id", "email"]),
            _table("logins", ["id", "email"], fks=[("email", "users", "email")]),
        ]
        relationships = RelationshipDiscovery().discover_relationships(tables)
        forward = next(r for r in relationships if r.from_table == "logins")
        reverse = next(r for r in relationships if r.from_table == "users")
        assert forward.kind is RelationshipKind.ONE_TO_MANY
        assert reverse.kind is RelationshipKind.MANY_TO_ONE

    def test_reverse_symmetry(self, blog_tables: list[TableInfo]) -> None:
        """Every forward relationship has exactly one complementary reverse."""
        relationships = RelationshipDiscovery().discover_relationships(blog_tables)
        direct = [r for r in relationships if r.kind is not RelationshipKind.MANY_TO_MANY]

        for table in blog_tables:
            for fk in table.foreign_keys:
                forward = [
                    r for r in direct
                    if (r.from_table, r.from_column, r.to_table, r.to_column)
                    == (table.name, fk.column, fk.referenced_table, fk.referenced_column)
                ]
                reverse = [
                    r for r in direct
                    if (r.from_table, r.from_column, r.to_table, r.to_column)
                    == (fk.referenced_table, fk.referenced_column, table.name, fk.column)
                ]
                assert len(forward) == 1
                assert len(reverse) == 1
                assert reverse[0].kind is forward[0].kind.inverse

    def test_missing_referenced_table_skipped(self) -> None:
        tables = [_table("posts", ["id", "author_id"], fks=[("author_id", "users", "id")])]
        assert RelationshipDiscovery().discover_relationships(tables) == []

    def test_two_keys_to_same_parent_get_distinct_reverse_names(self) -> None:
        tables = [
            _table("users", ["id"]),
            _table(
                "messages",
                ["id", "sender_id", "recipient_id", "body"],
                fks=[("sender_id", "users", "id"), ("recipient_id", "users", "id")],
            ),
        ]
        relationships = RelationshipDiscovery().discover_relationships(tables)
        reverse_names = sorted(r.name for r in relationships if r.from_table == "users")
        assert reverse_names == ["messagesByRecipient", "messagesBySender"]

    def test_self_reference(self) -> None:
        tables = [_table("nodes", ["id", "parent_id"], fks=[("parent_id", "nodes", "id")])]
        relationships = RelationshipDiscovery().discover_relationships(tables)
        assert len(relationships) == 2
        assert {r.name for r in relationships} == {"parent", "nodes"}


# ------------------------------------------------------------------
# Junction tables
# ------------------------------------------------------------------


class TestJunctionDetection:
    """Many-to-many inference through junction tables."""

    def test_pure_junction_yields_two_many_to_many(self, blog_tables: list[TableInfo]) -> None:
        relationships = RelationshipDiscovery().discover_relationships(blog_tables)
        many = [r for r in relationships if r.kind is RelationshipKind.MANY_TO_MANY]

        assert len(many) == 2
        pairs = {(r.from_table, r.to_table) for r in many}
        assert pairs == {("posts", "tags"), ("tags", "posts")}
        for relationship in many:
            assert relationship.through_table == "post_tags"
            assert {relationship.through_from_column, relationship.through_to_column} == {
                "post_id", "tag_id",
            }

        posts_to_tags = next(r for r in many if r.from_table == "posts")
        assert posts_to_tags.name == "tags"
        assert posts_to_tags.through_from_column == "post_id"
        assert posts_to_tags.through_to_column == "tag_id"

    def test_third_foreign_key_removes_junction(self, blog_tables: list[TableInfo]) -> None:
        tables = blog_tables[:3] + [
            _table(
                "post_tags",
                ["post_id", "tag_id", "user_id"],
                pk=["post_id", "tag_id"],
                fks=[
                    ("post_id", "posts", "id"),
                    ("tag_id", "tags", "id"),
                    ("user_id", "users", "id"),
                ],
            )
        ]
        relationships = RelationshipDiscovery().discover_relationships(tables)

        assert not [r for r in relationships if r.kind is RelationshipKind.MANY_TO_MANY]
        junction_related = [
            r for r in relationships if "post_tags" in (r.from_table, r.to_table)
        ]
        assert len(junction_related) == 6

    def test_extra_columns_within_limit(self) -> None:
        engine = RelationshipDiscovery(junction_extra_column_limit=2)
        table = _table(
            "memberships",
            ["id", "user_id", "group_id", "created_at", "role"],
            fks=[("user_id", "users", "id"), ("group_id", "groups", "id")],
        )
        assert engine.is_junction_table(table)

    def test_extra_columns_over_limit(self) -> None:
        engine = RelationshipDiscovery(junction_extra_column_limit=1)
        table = _table(
            "memberships",
            ["id", "user_id", "group_id", "created_at", "role"],
            fks=[("user_id", "users", "id"), ("group_id", "groups", "id")],
        )
        assert not engine.is_junction_table(table)

    def test_both_keys_to_same_table_not_many_to_many(self) -> None:
        tables = [
            _table("users", ["id"]),
            _table(
                "follows",
                ["follower_id", "followee_id"],
                pk=["follower_id", "followee_id"],
                fks=[("follower_id", "users", "id"), ("followee_id", "users", "id")],
            ),
        ]
        relationships = RelationshipDiscovery().discover_relationships(tables)
        assert not [r for r in relationships if r.kind is RelationshipKind.MANY_TO_MANY]
        assert len(relationships) == 4


# ------------------------------------------------------------------
# Cycles and patterns
# ------------------------------------------------------------------


class TestCircularReferences:
    """Cycle detection over the foreign key graph."""

    def test_two_table_cycle(self) -> None:
        tables = [
            _table("a", ["id", "b_id"], fks=[("b_id", "b", "id")]),
            _table("b", ["id", "a_id"], fks=[("a_id", "a", "id")]),
        ]
        assert RelationshipDiscovery().detect_circular_references(tables) == ["a -> b -> a"]

    def test_self_reference_cycle(self) -> None:
        tables = [_table("node", ["id", "parent_id"], fks=[("parent_id", "node", "id")])]
        assert RelationshipDiscovery().detect_circular_references(tables) == ["node -> node"]

    def test_acyclic_graph(self, blog_tables: list[TableInfo]) -> None:
        assert RelationshipDiscovery().detect_circular_references(blog_tables) == []

    def test_deep_chain_does_not_recurse(self) -> None:
        tables = [_table("t0", ["id"])]
        for i in range(1, 3000):
            tables.append(_table(f"t{i}", ["id", "prev_id"], fks=[("prev_id", f"t{i - 1}", "id")]))
        assert RelationshipDiscovery().detect_circular_references(tables) == []

    def test_analyze_patterns(self, blog_tables: list[TableInfo]) -> None:
        patterns = RelationshipDiscovery().analyze_relationship_patterns(blog_tables)
        assert len(patterns.many_to_many) == 2
        assert len(patterns.one_to_many) == 3
        assert patterns.self_referencing == []
        assert patterns.circular_references == []


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


class TestValidateRelationships:
    """Foreign key validation collects issues instead of raising."""

    def test_valid_schema(self, blog_tables: list[TableInfo]) -> None:
        report = RelationshipDiscovery().validate_relationships(blog_tables)
        assert report.valid
        assert report.issues == []

    def test_missing_table_names_constraint_and_table(self) -> None:
        tables = [_table("posts", ["id", "author_id"], fks=[("author_id", "users", "id")])]
        report = RelationshipDiscovery().validate_relationships(tables)

        assert not report.valid
        assert report.issues == [
            "Foreign key 'fk_posts_author_id' in table 'posts' "
            "references non-existent table 'users'"
        ]

    def test_missing_referenced_column(self) -> None:
        tables = [
            _table("users", ["id"]),
            _table("posts", ["id", "author_id"], fks=[("author_id", "users", "uid")]),
        ]
        report = RelationshipDiscovery().validate_relationships(tables)
        assert len(report.issues) == 1
        assert "non-existent column 'uid' in table 'users'" in report.issues[0]

    def test_missing_local_column(self) -> None:
        tables = [
            _table("users", ["id"]),
            _table("posts", ["id"], fks=[("author_id", "users", "id")]),
        ]
        report = RelationshipDiscovery().validate_relationships(tables)
        assert report.issues == [
            "Foreign key 'fk_posts_author_id' in table 'posts' "
            "references non-existent column 'author_id'"
        ]

    def test_all_problems_collected(self) -> None:
        tables = [
            _table(
                "posts",
                ["id"],
                fks=[("author_id", "users", "id"), ("editor_id", "editors", "id")],
            )
        ]
        report = RelationshipDiscovery().validate_relationships(tables)
        assert len(report.issues) == 4
        assert "4 issue(s)" in report.format_report()
