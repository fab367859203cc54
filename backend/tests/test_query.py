from datetime import datetime, timedelta, timezone

from app.models.tables import Movie
from app.services.query import (
    Predicate, SortKey, build_filter_query, build_search_query, build_sort_query,
    compile_predicate, sort_documents,
)

DOCS = [
    {"title": "Alpha", "overview": "first", "genres": ["Action"], "language": ["English"],
     "release_year": 2020, "rating": 7.5, "cast": [{"name": "Keanu Reeves"}]},
    {"title": "Beta", "overview": "second", "genres": ["Drama"], "language": ["French"],
     "release_year": 2021, "rating": 6.0, "cast": []},
]


# ── Filters ──────────────────────────────────────────────────────

def test_genres_filter_is_any_of():
    pred = build_filter_query({"genres": "Action, Comedy"})
    assert pred.matches({"genres": ["Action"]})
    assert pred.matches({"genres": ["Comedy", "Drama"]})
    assert not pred.matches({"genres": ["Drama"]})


def test_language_is_membership_and_rating_is_at_least():
    pred = build_filter_query({"language": "English", "rating": "7"})
    assert [d["title"] for d in DOCS if pred.matches(d)] == ["Alpha"]


def test_non_numeric_year_and_rating_are_dropped():
    pred = build_filter_query({"releaseYear": "soon", "rating": "high"})
    assert pred.is_empty


def test_blank_values_are_dropped():
    assert build_filter_query({"type": "  ", "quality": "", "genres": " , "}).is_empty


def test_unknown_keys_are_ignored_unless_allow_listed():
    assert build_filter_query({"director": "Wachowski", "password": "x"}).is_empty

    pred = build_filter_query({"director": "Wachowski"}, {"director": "director"})
    assert pred.matches({"director": "Wachowski"})
    assert not pred.matches({"director": "Nolan"})


# ── Search ───────────────────────────────────────────────────────

def test_short_search_terms_match_everything():
    for term in (None, "", " ", "a", "  b  "):
        pred = build_search_query(term, ["title"])
        assert pred.is_empty
        assert all(pred.matches(d) for d in DOCS)


def test_search_is_case_insensitive_across_fields():
    pred = build_search_query("SECOND", ["title", "overview"])
    assert [d["title"] for d in DOCS if pred.matches(d)] == ["Beta"]


def test_search_reaches_into_sub_documents():
    pred = build_search_query("keanu", ["title", "cast.name"])
    assert [d["title"] for d in DOCS if pred.matches(d)] == ["Alpha"]


def test_default_search_fields_are_title_and_overview():
    assert build_search_query("first").matches(DOCS[0])


# ── Sorting ──────────────────────────────────────────────────────

def test_sort_presets():
    assert build_sort_query("newest") == (SortKey("created_at", True),)
    assert build_sort_query("alphabetical") == (SortKey("title", False),)
    assert build_sort_query("rating") == (SortKey("rating", True), SortKey("imdb_rating", True))


def test_field_sort_honours_direction_and_falls_back_to_created_at():
    assert build_sort_query("releaseYear", "asc") == (SortKey("release_year", False),)
    assert build_sort_query("views") == (SortKey("views", True),)
    assert build_sort_query("password_hash", "asc") == (SortKey("created_at", False),)


def test_trending_ties_are_broken_by_most_recent():
    now = datetime.now(timezone.utc)
    older = {"title": "older", "views": 10, "rating": 8, "likes": 2, "created_at": now - timedelta(days=3)}
    newer = {"title": "newer", "views": 10, "rating": 8, "likes": 2, "created_at": now}
    ordered = sort_documents([older, newer], build_sort_query("trending"))
    assert [d["title"] for d in ordered] == ["newer", "older"]


def test_missing_values_sort_last_in_descending_order():
    ordered = sort_documents([{"rating": None}, {"rating": 5}], (SortKey("rating"),))
    assert ordered[0]["rating"] == 5


# ── SQL compilation ──────────────────────────────────────────────

def test_scalar_conditions_compile_and_json_conditions_stay_residual():
    pred = (
        Predicate()
        .where("admin_status", "eq", "Published")
        .where("genres", "in", ("Action",))
        & build_search_query("matrix", ["title", "cast.name"])
    )
    sql, residual = compile_predicate(Movie, pred)
    assert len(sql) == 1
    assert len(residual.clauses) == 2


def test_any_of_on_scalar_columns_compiles_to_one_clause():
    sql, residual = compile_predicate(Movie, build_search_query("matrix", ["title", "overview"]))
    assert len(sql) == 1
    assert residual.is_empty
