"""Tests for the relationship analysis orchestrator."""

from unittest.mock import MagicMock

import pytest

from seedgraph.core.exceptions import RelationshipAnalysisError
from seedgraph.core.logging import analysis_id_ctx
from seedgraph.shared.relationships.analyzer import RelationshipAnalyzer
from seedgraph.shared.relationships.cache import AnalysisCache
from seedgraph.shared.relationships.classifier import TableClassifier
from seedgraph.shared.relationships.config import (
    AnalysisOptions,
    ClassifierConfig,
    SeedingOrderOptions,
)

BLOG_TABLES = {
    "users": ["id", "email"],
    "posts": ["id", "user_id", "title"],
    "comments": ["id", "post_id", "user_id", "body"],
}
BLOG_FKS = [
    ("posts", "user_id", "users", False),
    ("comments", "post_id", "posts", False),
    ("comments", "user_id", "users", True),
]


def _phases(result):
    return [phase.tables for phase in result.seeding_order.phases]


@pytest.fixture
def blog_provider(make_provider):
    return make_provider(BLOG_TABLES, BLOG_FKS)


class TestAnalyzeRelationships:
    """Tests for a full analysis run."""

    @pytest.mark.asyncio
    async def test_blog_schema(self, blog_provider):
        """A linear schema yields one table per phase."""
        result = await RelationshipAnalyzer(blog_provider).analyze_relationships()

        assert result.success is True
        assert _phases(result) == [("users",), ("posts",), ("comments",)]
        assert result.seeding_order.deletion_order == ("comments", "posts", "users")
        assert result.analysis_metadata.tables_analyzed == 3
        assert result.analysis_metadata.relationships_found == 3
        assert result.analysis_metadata.max_dependency_depth == 2
        assert result.analysis_metadata.cache_hit is False
        assert result.analysis_metadata.confidence == 1.0
        assert result.warnings == ()
        assert result.errors == ()
        assert result.execution_time >= 0

    @pytest.mark.asyncio
    async def test_table_dependencies_mirror_edges(self, blog_provider):
        """Each foreign key becomes one table dependency."""
        result = await RelationshipAnalyzer(blog_provider).analyze_relationships()

        deps = {(d.from_table, d.to_table, d.relationship) for d in result.table_dependencies}
        assert deps == {
            ("posts", "users", "required"),
            ("comments", "posts", "required"),
            ("comments", "users", "optional"),
        }
        assert len(result.foreign_key_relationships) == 3

    @pytest.mark.asyncio
    async def test_empty_schema(self, make_provider):
        """A schema without tables gives an empty, successful result."""
        result = await RelationshipAnalyzer(make_provider({})).analyze_relationships()

        assert result.success is True
        assert result.dependency_graph.nodes == ()
        assert result.seeding_order.seeding_order == ()
        assert result.recommendations == ()

    @pytest.mark.asyncio
    async def test_nullable_cycle(self, make_provider):
        """A cycle with a nullable side is resolved by deferral."""
        provider = make_provider(
            {"a": ["id", "b_id"], "b": ["id", "a_id"]},
            [("a", "b_id", "b", True), ("b", "a_id", "a", False)],
        )

        result = await RelationshipAnalyzer(provider).analyze_relationships()

        assert _phases(result) == [("a",), ("b",)]
        assert [e.label for e in result.seeding_order.circular_dependencies_resolved] == [
            "a.b_id -> b.id"
        ]
        assert result.analysis_metadata.circular_dependencies == 1
        assert result.errors == ()
        assert any("circular dependencies" in r for r in result.recommendations)

    @pytest.mark.asyncio
    async def test_required_cycle_reported(self, make_provider):
        """A cycle of NOT NULL keys still succeeds but carries an error."""
        provider = make_provider(
            {"a": ["id", "b_id"], "b": ["id", "a_id"], "c": ["id"]},
            [("a", "b_id", "b", False), ("b", "a_id", "a", False)],
        )

        result = await RelationshipAnalyzer(provider).analyze_relationships()

        assert result.success is True
        assert _phases(result) == [("c",), ("a", "b")]
        assert result.seeding_order.phases[-1].best_effort is True
        assert len(result.errors) == 1
        assert "a -> b -> a" in result.errors[0]

    @pytest.mark.asyncio
    async def test_junction_table_detected(self, make_provider):
        """A composite-key link table is reported as a junction table."""
        provider = make_provider(
            {"posts": ["id", "title"], "tags": ["id", "name"], "post_tags": ["post_id", "tag_id"]},
            [("post_tags", "post_id", "posts", False), ("post_tags", "tag_id", "tags", False)],
            primary_keys={"posts": ["id"], "tags": ["id"], "post_tags": ["post_id", "tag_id"]},
        )

        result = await RelationshipAnalyzer(provider).analyze_relationships()

        assert result.analysis_metadata.junction_tables_detected == ("post_tags",)
        assert _phases(result) == [("posts", "tags"), ("post_tags",)]
        assert any("junction tables" in r for r in result.recommendations)

    @pytest.mark.asyncio
    async def test_tenant_tables_detected(self, make_provider):
        """Tables carrying an owner column are tenant-scoped."""
        provider = make_provider(
            {"accounts": ["id", "name"], "projects": ["id", "account_id", "name"]},
            [("projects", "account_id", "accounts", False)],
        )

        result = await RelationshipAnalyzer(provider).analyze_relationships()

        assert result.analysis_metadata.tenant_scoped_tables == ("projects",)
        assert "1 tenant-scoped tables detected - enable multi-tenant mode" in (
            result.recommendations
        )

    @pytest.mark.asyncio
    async def test_tenant_detection_does_not_regroup_phases(self, make_provider):
        """Tenant scoping only classifies; seeding.group_by_tenant moves tables."""
        provider = make_provider(
            {
                "notes": ["id", "tenant_id"],
                "users": ["id", "email"],
                "posts": ["id", "tenant_id", "user_id"],
            },
            [("posts", "user_id", "users", False)],
        )

        detected = await RelationshipAnalyzer(
            provider, AnalysisOptions(analyze_tenant_scoping=True)
        ).analyze_relationships()
        grouped = await RelationshipAnalyzer(
            provider, AnalysisOptions(seeding=SeedingOrderOptions(group_by_tenant=True))
        ).analyze_relationships()

        assert detected.analysis_metadata.tenant_scoped_tables == ("notes", "posts")
        assert _phases(detected) == [("notes", "users"), ("posts",)]
        assert _phases(grouped) == [("users",), ("notes", "posts")]

    @pytest.mark.asyncio
    async def test_recommendations_disabled(self, make_provider):
        """No recommendations when generation is off."""
        provider = make_provider(
            {"accounts": ["id"], "projects": ["id", "account_id"]},
            [("projects", "account_id", "accounts", False)],
        )
        options = AnalysisOptions(generate_recommendations=False)

        result = await RelationshipAnalyzer(provider, options).analyze_relationships()

        assert result.recommendations == ()

    @pytest.mark.asyncio
    async def test_seeding_options_passed_through(self, blog_provider):
        """Seeding options reach the calculator."""
        options = AnalysisOptions(seeding=SeedingOrderOptions(handle_optional_relationships="ignore"))

        result = await RelationshipAnalyzer(blog_provider, options).analyze_relationships()

        assert _phases(result) == [("users",), ("posts",), ("comments",)]
        assert result.seeding_order.circular_dependencies_resolved == ()


class TestScope:
    """Tests for schema scope filtering."""

    @pytest.mark.asyncio
    async def test_include_tables(self, blog_provider):
        """Only included tables are analyzed."""
        options = AnalysisOptions(include_tables=["users", "posts"])

        result = await RelationshipAnalyzer(blog_provider, options).analyze_relationships()

        assert result.dependency_graph.table_names == ("posts", "users")
        assert result.analysis_metadata.relationships_found == 1
        assert result.warnings == ()

    @pytest.mark.asyncio
    async def test_exclude_referenced_table(self, blog_provider):
        """Excluding a referenced table drops edges into it with warnings."""
        options = AnalysisOptions(exclude_tables=["users"])

        result = await RelationshipAnalyzer(blog_provider, options).analyze_relationships()

        assert result.dependency_graph.table_names == ("comments", "posts")
        assert result.dependency_graph.metadata.dropped_edges == 2
        assert sum("users" in w for w in result.warnings) == 2
        assert _phases(result) == [("posts",), ("comments",)]

    @pytest.mark.asyncio
    async def test_optional_relationships_excluded(self, blog_provider):
        """Nullable keys are removed from the graph when excluded."""
        options = AnalysisOptions(include_optional_relationships=False)

        result = await RelationshipAnalyzer(blog_provider, options).analyze_relationships()

        assert result.analysis_metadata.relationships_found == 2
        assert all(edge.kind == "required" for edge in result.foreign_key_relationships)


class TestDegradation:
    """Tests for introspection failures."""

    @pytest.mark.asyncio
    async def test_falls_back_to_basic_foreign_key_query(self, make_provider):
        """A failing detailed query falls back to catalog views."""
        provider = make_provider(
            BLOG_TABLES, BLOG_FKS, failures={"foreign_keys": RuntimeError("permission denied")}
        )

        result = await RelationshipAnalyzer(provider).analyze_relationships()

        assert "foreign_keys_basic" in provider.calls
        assert _phases(result) == [("users",), ("posts",), ("comments",)]
        assert len(result.warnings) == 1
        assert "information_schema fallback" in result.warnings[0]
        assert "permission denied" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_basic_query_not_used_when_detailed_succeeds(self, blog_provider):
        """The fallback only runs on failure."""
        await RelationshipAnalyzer(blog_provider).analyze_relationships()

        assert "foreign_keys_basic" not in blog_provider.calls

    @pytest.mark.asyncio
    async def test_no_foreign_keys_available(self, make_provider):
        """Both key queries failing leaves one phase of independent tables."""
        provider = make_provider(
            BLOG_TABLES,
            BLOG_FKS,
            failures={
                "foreign_keys": RuntimeError("denied"),
                "foreign_keys_basic": RuntimeError("also denied"),
            },
        )

        result = await RelationshipAnalyzer(provider).analyze_relationships()

        assert result.success is True
        assert _phases(result) == [("comments", "posts", "users")]
        assert len(result.warnings) == 2
        assert "continuing without relationships" in result.warnings[1]

    @pytest.mark.asyncio
    async def test_tables_query_failure(self, blog_provider):
        """A failed table query is a warning, not an exception."""
        blog_provider.failures["tables"] = RuntimeError("connection reset")

        result = await RelationshipAnalyzer(blog_provider).analyze_relationships()

        assert result.success is True
        assert result.dependency_graph.nodes == ()
        assert result.warnings[0] == "Failed to fetch tables: connection reset"

    @pytest.mark.asyncio
    async def test_malformed_rows_become_warnings(self, blog_provider):
        """Incomplete catalog rows are reported and their edges dropped."""
        blog_provider.foreign_keys.append({"table_name": "comments"})

        result = await RelationshipAnalyzer(blog_provider).analyze_relationships()

        assert result.success is True
        assert result.analysis_metadata.relationships_found == 3
        assert result.dependency_graph.metadata.dropped_edges == 1
        assert any("incomplete" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_unexpected_failure(self, blog_provider):
        """Internal errors produce an unsuccessful result with an empty graph."""
        classifier = MagicMock()
        classifier.classify.side_effect = RuntimeError("boom")
        cache = AnalysisCache()

        result = await RelationshipAnalyzer(
            blog_provider, cache=cache, classifier=classifier
        ).analyze_relationships()

        assert result.success is False
        assert result.dependency_graph.nodes == ()
        assert result.errors == ("Relationship analysis failed: boom",)
        assert len(cache) == 0


class TestCaching:
    """Tests for result caching."""

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, blog_provider):
        """A repeated analysis skips introspection."""
        analyzer = RelationshipAnalyzer(blog_provider, cache=AnalysisCache())

        first = await analyzer.analyze_relationships()
        calls = len(blog_provider.calls)
        second = await analyzer.analyze_relationships()

        assert first.analysis_metadata.cache_hit is False
        assert second.analysis_metadata.cache_hit is True
        assert len(blog_provider.calls) == calls
        assert second.seeding_order == first.seeding_order

    @pytest.mark.asyncio
    async def test_shared_cache_across_analyzers(self, blog_provider):
        """Analyzers with equal options share entries; different options do not."""
        cache = AnalysisCache()
        await RelationshipAnalyzer(blog_provider, cache=cache).analyze_relationships()

        same = await RelationshipAnalyzer(blog_provider, cache=cache).analyze_relationships()
        other = await RelationshipAnalyzer(
            blog_provider, AnalysisOptions(exclude_tables=["comments"]), cache=cache
        ).analyze_relationships()

        assert same.analysis_metadata.cache_hit is True
        assert other.analysis_metadata.cache_hit is False
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_caching_disabled(self, blog_provider):
        """With caching off every call introspects."""
        analyzer = RelationshipAnalyzer(blog_provider, AnalysisOptions(enable_caching=False))

        await analyzer.analyze_relationships()
        calls = len(blog_provider.calls)
        second = await analyzer.analyze_relationships()

        assert analyzer.cache is None
        assert second.analysis_metadata.cache_hit is False
        assert len(blog_provider.calls) == 2 * calls

    @pytest.mark.asyncio
    async def test_clear_cache(self, blog_provider):
        """Clearing forces the next call to introspect again."""
        analyzer = RelationshipAnalyzer(blog_provider)
        await analyzer.analyze_relationships()

        assert analyzer.clear_cache() == 1
        result = await analyzer.analyze_relationships()

        assert result.analysis_metadata.cache_hit is False

    @pytest.mark.asyncio
    async def test_classifier_config_separates_entries(self, blog_provider):
        """Different classifier thresholds never reuse each other's result."""
        cache = AnalysisCache()
        user_tenants = ClassifierConfig(tenant_columns=frozenset({"user_id"}))

        default = await RelationshipAnalyzer(blog_provider, cache=cache).analyze_relationships()
        custom = await RelationshipAnalyzer(
            blog_provider, AnalysisOptions(classifier=user_tenants), cache=cache
        ).analyze_relationships()

        assert default.analysis_metadata.tenant_scoped_tables == ()
        assert custom.analysis_metadata.cache_hit is False
        assert custom.analysis_metadata.tenant_scoped_tables == ("comments", "posts")
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_injected_classifier_separates_entries(self, blog_provider):
        """An injected classifier is keyed by its own config and flags."""
        cache = AnalysisCache()
        await RelationshipAnalyzer(blog_provider, cache=cache).analyze_relationships()

        injected = TableClassifier(config=ClassifierConfig(tenant_columns=frozenset({"user_id"})))
        analyzer = RelationshipAnalyzer(blog_provider, cache=cache, classifier=injected)
        result = await analyzer.analyze_relationships()

        assert result.analysis_metadata.cache_hit is False
        assert result.analysis_metadata.tenant_scoped_tables == ("comments", "posts")
        assert analyzer.fingerprint() != RelationshipAnalyzer(blog_provider).fingerprint()

    @pytest.mark.asyncio
    async def test_time_estimates_separate_entries(self, blog_provider):
        """Seeding time estimates are part of the cache key."""
        cache = AnalysisCache()
        await RelationshipAnalyzer(blog_provider, cache=cache).analyze_relationships()

        slower = AnalysisOptions(seeding=SeedingOrderOptions(time_per_table_ms=5000))
        result = await RelationshipAnalyzer(
            blog_provider, slower, cache=cache
        ).analyze_relationships()

        assert result.analysis_metadata.cache_hit is False
        assert result.seeding_order.metadata.estimated_seeding_time == 3 * 5000 + 3 * 500

    def test_private_cache_uses_ttl(self, blog_provider):
        """An analyzer without an injected cache owns one with the configured TTL."""
        analyzer = RelationshipAnalyzer(blog_provider, AnalysisOptions(cache_ttl_minutes=5))
        assert analyzer.cache.ttl_seconds == 300

        forever = RelationshipAnalyzer(blog_provider, AnalysisOptions(cache_ttl_minutes=None))
        assert forever.cache.ttl_seconds is None


class TestSubgraph:
    """Tests for get_dependency_graph_for_tables."""

    @pytest.mark.asyncio
    async def test_filters_graph(self, blog_provider):
        """Only the requested tables and the edges between them remain."""
        graph = await RelationshipAnalyzer(blog_provider).get_dependency_graph_for_tables(
            ["posts", "users", "ghost"]
        )

        assert graph.table_names == ("posts", "users")
        assert [e.label for e in graph.edges] == ["posts.user_id -> users.id"]

    @pytest.mark.asyncio
    async def test_raises_when_analysis_fails(self, blog_provider):
        """A failed analysis cannot be filtered."""
        classifier = MagicMock()
        classifier.classify.side_effect = RuntimeError("boom")
        analyzer = RelationshipAnalyzer(blog_provider, classifier=classifier)

        with pytest.raises(RelationshipAnalysisError) as exc_info:
            await analyzer.get_dependency_graph_for_tables(["users"])

        assert "boom" in str(exc_info.value.details["errors"])


class TestCorrelation:
    """Tests for analysis correlation ids."""

    @pytest.mark.asyncio
    async def test_analysis_id_bound_during_run(self, blog_provider):
        """Every fetch sees an analysis id, which is reset afterwards."""
        seen: list[str | None] = []
        wrapped = blog_provider.fetch_tables

        async def fetch_tables(schemas):
            seen.append(analysis_id_ctx.get())
            return await wrapped(schemas)

        blog_provider.fetch_tables = fetch_tables

        await RelationshipAnalyzer(blog_provider).analyze_relationships()

        assert seen[0] is not None
        assert analysis_id_ctx.get() is None
