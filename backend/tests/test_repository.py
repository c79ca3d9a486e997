"""Repository: 一意検索・作成・更新・削除・一覧・集計"""
from datetime import timedelta

import pytest

from submitin.core.database import utcnow
from submitin.core.errors import ConstraintViolationError, NotFoundError, ValidationError


class TestFindUnique:
    def test_returns_none_when_missing(self, client):
        assert client.user.find_unique({"email": "nobody@example.com"}) is None

    def test_or_throw_raises_not_found(self, client):
        with pytest.raises(NotFoundError) as exc_info:
            client.user.find_unique_or_throw({"email": "nobody@example.com"})
        assert exc_info.value.model == "User"
        assert exc_info.value.status_code == 404

    def test_by_id_and_unique_column(self, client, user):
        assert client.user.find_unique({"id": user.id}).email == "owner@example.com"
        assert client.user.find_unique({"email": "owner@example.com"}).id == user.id

    def test_non_unique_where_rejected(self, client, user):
        with pytest.raises(ValidationError):
            client.user.find_unique({"name": "Owner"})

    def test_empty_where_rejected(self, client):
        with pytest.raises(ValidationError):
            client.user.find_unique({})

    def test_compound_key(self, client, user):
        client.account.create({
            "user_id": user.id,
            "type": "oauth",
            "provider": "github",
            "provider_account_id": "42",
        })
        found = client.account.find_unique(
            {"provider_provider_account_id": {"provider": "github", "provider_account_id": "42"}}
        )
        assert found is not None
        assert found.user_id == user.id

    def test_compound_key_must_be_dict(self, client):
        with pytest.raises(ValidationError):
            client.account.find_unique({"provider_provider_account_id": "github:42"})

    def test_include_loads_relation(self, client, user, make_form, make_field):
        form = make_form(user)
        make_field(form, label="B", order=1)
        make_field(form, label="A", order=0)
        loaded = client.form.find_unique({"id": form.id}, include={"fields": True, "settings": True})
        assert [f.label for f in loaded.fields] == ["A", "B"]
        assert loaded.settings is None

    def test_nested_include_by_slug(self, client, user, make_form, make_field):
        form = make_form(user, slug="contact")
        field = make_field(form, label="Name")
        response = client.response.create({"form_id": form.id})
        client.field_value.create({"response_id": response.id, "field_id": field.id, "value": "Alice"})

        loaded = client.form.find_unique(
            {"slug": "contact"},
            include={"fields": True, "responses": {"include": {"field_values": True}}},
        )
        assert [f.id for f in loaded.fields] == [field.id]
        assert [r.id for r in loaded.responses] == [response.id]
        assert [v.value for v in loaded.responses[0].field_values] == ["Alice"]


class TestCreate:
    def test_generates_id_and_defaults(self, client, user, make_form):
        form = make_form(user)
        assert form.id
        assert form.published is False
        assert form.created_at is not None

    def test_duplicate_email(self, client, user):
        with pytest.raises(ConstraintViolationError) as exc_info:
            client.user.create({"email": "owner@example.com"})
        assert exc_info.value.kind == "unique"
        assert exc_info.value.target == ["email"]
        assert exc_info.value.status_code == 409

    def test_duplicate_slug(self, user, make_form):
        make_form(user, slug="same")
        with pytest.raises(ConstraintViolationError) as exc_info:
            make_form(user, slug="same", name="Other")
        assert exc_info.value.target == ["slug"]

    def test_duplicate_session_token(self, client, user):
        expires = utcnow() + timedelta(days=1)
        client.session.create({"session_token": "tok", "user_id": user.id, "expires": expires})
        with pytest.raises(ConstraintViolationError) as exc_info:
            client.session.create({"session_token": "tok", "user_id": user.id, "expires": expires})
        assert exc_info.value.kind == "unique"

    def test_duplicate_provider_account(self, client, user, other_user):
        data = {"type": "oauth", "provider": "google", "provider_account_id": "abc"}
        client.account.create({**data, "user_id": user.id})
        with pytest.raises(ConstraintViolationError) as exc_info:
            client.account.create({**data, "user_id": other_user.id})
        assert exc_info.value.target == ["provider", "provider_account_id"]

    def test_second_settings_row_for_form(self, client, user, make_form):
        form = make_form(user)
        client.form_settings.create({"form_id": form.id, "notify_email": "a@example.com"})
        with pytest.raises(ConstraintViolationError) as exc_info:
            client.form_settings.create({"form_id": form.id})
        assert exc_info.value.target == ["form_id"]

    def test_duplicate_value_for_same_field(self, client, user, make_form, make_field):
        form = make_form(user)
        field = make_field(form)
        response = client.response.create({"form_id": form.id})
        client.field_value.create({"response_id": response.id, "field_id": field.id, "value": "x"})
        with pytest.raises(ConstraintViolationError):
            client.field_value.create({"response_id": response.id, "field_id": field.id, "value": "y"})

    def test_missing_parent(self, client):
        with pytest.raises(ConstraintViolationError) as exc_info:
            client.field.create({"type": "text", "label": "Name", "order": 0, "form_id": "missing"})
        assert exc_info.value.kind == "foreign_key"

    def test_missing_required_field(self, client, user, make_form):
        form = make_form(user)
        with pytest.raises(ValidationError) as exc_info:
            client.field.create({"type": "text", "label": "Name", "form_id": form.id})
        assert [e["field"] for e in exc_info.value.errors] == ["order"]
        assert client.field.count({"form_id": form.id}) == 0

    def test_empty_label_rejected(self, client, user, make_form):
        form = make_form(user)
        with pytest.raises(ValidationError):
            client.field.create({"type": "text", "label": "", "order": 0, "form_id": form.id})

    def test_invalid_email_rejected(self, client):
        with pytest.raises(ValidationError) as exc_info:
            client.user.create({"email": "not-an-email"})
        assert exc_info.value.model == "User"

    def test_unknown_key_rejected(self, client):
        with pytest.raises(ValidationError):
            client.user.create({"email": "x@example.com", "role": "admin"})

    def test_create_with_include(self, client, user):
        form = client.form.create(
            {"slug": "s", "name": "S", "user_id": user.id},
            include={"user": True},
        )
        assert form.user.email == "owner@example.com"


class TestCreateMany:
    def test_inserts_all(self, client, user, make_form):
        form = make_form(user)
        created = client.field.create_many([
            {"type": "text", "label": "A", "order": 0, "form_id": form.id},
            {"type": "email", "label": "B", "order": 1, "form_id": form.id, "required": True},
        ])
        assert created == 2
        assert client.field.count({"form_id": form.id}) == 2

    def test_empty_list(self, client):
        assert client.field.create_many([]) == 0

    def test_duplicate_without_skip_fails_entirely(self, client, user, make_form, make_field):
        form = make_form(user)
        field = make_field(form)
        response = client.response.create({"form_id": form.id})
        client.field_value.create({"response_id": response.id, "field_id": field.id, "value": "x"})
        with pytest.raises(ConstraintViolationError):
            client.field_value.create_many([
                {"response_id": response.id, "field_id": field.id, "value": "y"},
            ])
        assert client.field_value.count({"response_id": response.id}) == 1

    def test_skip_duplicates(self, client, user, make_form, make_field):
        form = make_form(user)
        first = make_field(form, label="A", order=0)
        second = make_field(form, label="B", order=1)
        response = client.response.create({"form_id": form.id})
        client.field_value.create({"response_id": response.id, "field_id": first.id, "value": "x"})
        client.field_value.create_many(
            [
                {"response_id": response.id, "field_id": first.id, "value": "dup"},
                {"response_id": response.id, "field_id": second.id, "value": "new"},
            ],
            skip_duplicates=True,
        )
        values = client.field_value.find_many(where={"response_id": response.id}, order_by={"value": "asc"})
        assert [v.value for v in values] == ["new", "x"]


class TestUpdate:
    def test_updates_row(self, client, user, make_form):
        form = make_form(user)
        updated = client.form.update({"id": form.id}, {"published": True, "name": "Renamed"})
        assert updated.published is True
        assert client.form.find_unique({"slug": "survey-1"}).name == "Renamed"

    def test_missing_row(self, client):
        with pytest.raises(NotFoundError):
            client.form.update({"id": "missing"}, {"name": "x"})

    def test_explicit_null_for_required_column(self, client, user, make_form):
        form = make_form(user)
        with pytest.raises(ValidationError):
            client.form.update({"id": form.id}, {"name": None})

    def test_unique_conflict(self, client, user, other_user):
        with pytest.raises(ConstraintViolationError):
            client.user.update({"id": other_user.id}, {"email": "owner@example.com"})

    def test_update_many(self, client, user, make_form, make_field):
        form = make_form(user)
        make_field(form, label="A", order=0)
        make_field(form, label="B", order=1)
        count = client.field.update_many({"form_id": form.id}, {"required": True})
        assert count == 2
        assert client.field.count({"form_id": form.id, "required": True}) == 2

    def test_update_many_no_match(self, client):
        assert client.field.update_many({"form_id": "missing"}, {"required": True}) == 0


class TestUpsert:
    def test_creates_then_updates(self, client, user, make_form):
        form = make_form(user)
        first = client.form_settings.upsert(
            where={"form_id": form.id},
            create={"form_id": form.id, "webhook_url": "https://hooks.example.com/a"},
            update={"webhook_url": "https://hooks.example.com/a"},
        )
        second = client.form_settings.upsert(
            where={"form_id": form.id},
            create={"form_id": form.id, "webhook_url": "https://hooks.example.com/b"},
            update={"webhook_url": "https://hooks.example.com/b"},
        )
        assert first.id == second.id
        assert second.webhook_url == "https://hooks.example.com/b"
        assert client.form_settings.count({"form_id": form.id}) == 1

    def test_same_input_is_idempotent(self, client, user, make_form):
        form = make_form(user)
        args = dict(
            where={"form_id": form.id},
            create={"form_id": form.id, "notify_email": "a@example.com"},
            update={"notify_email": "a@example.com"},
        )
        client.form_settings.upsert(**args)
        client.form_settings.upsert(**args)
        assert client.form_settings.count() == 1


class TestDelete:
    def test_returns_deleted_row(self, client, user, make_form):
        form = make_form(user)
        deleted = client.form.delete({"id": form.id})
        assert deleted.id == form.id
        assert client.form.find_unique({"id": form.id}) is None

    def test_missing_row(self, client):
        with pytest.raises(NotFoundError):
            client.form.delete({"id": "missing"})

    def test_delete_many(self, client, user):
        expires = utcnow() + timedelta(days=1)
        for token in ("a", "b", "c"):
            client.session.create({"session_token": token, "user_id": user.id, "expires": expires})
        assert client.session.delete_many({"session_token": {"in": ["a", "b"]}}) == 2
        assert [s.session_token for s in client.session.find_many()] == ["c"]


class TestFindMany:
    @pytest.fixture
    def fields(self, user, make_form, make_field):
        form = make_form(user)
        return [
            make_field(form, label="Name", type="text", order=0, required=True),
            make_field(form, label="Mail", type="email", order=1),
            make_field(form, label="Note", type="text", order=2),
            make_field(form, label="Age", type="number", order=3),
            make_field(form, label="Date", type="date", order=4),
        ]

    def test_order_and_take_skip(self, client, fields):
        rows = client.field.find_many(order_by={"order": "desc"}, skip=1, take=2)
        assert [r.label for r in rows] == ["Age", "Note"]

    def test_cursor_includes_anchor(self, client, fields):
        rows = client.field.find_many(order_by={"order": "asc"}, cursor={"id": fields[2].id}, take=2)
        assert [r.label for r in rows] == ["Note", "Age"]

    def test_cursor_with_skip(self, client, fields):
        rows = client.field.find_many(order_by={"order": "asc"}, cursor={"id": fields[2].id}, skip=1, take=2)
        assert [r.label for r in rows] == ["Age", "Date"]

    def test_negative_take_reads_backwards(self, client, fields):
        rows = client.field.find_many(order_by={"order": "asc"}, cursor={"id": fields[2].id}, take=-2)
        assert [r.label for r in rows] == ["Mail", "Note"]

    def test_unknown_cursor_returns_empty(self, client, fields):
        assert client.field.find_many(cursor={"id": "missing"}) == []

    @pytest.mark.parametrize("order_by", [{"required": "desc"}, {"required": "asc"}])
    def test_cursor_on_boolean_column(self, client, fields, order_by):
        full = [r.id for r in client.field.find_many(order_by=order_by)]
        for i, anchor in enumerate(full):
            rows = client.field.find_many(order_by=order_by, cursor={"id": anchor})
            assert [r.id for r in rows] == full[i:]

    @pytest.mark.parametrize("direction", ["asc", "desc"])
    def test_cursor_on_nullable_column(self, client, fields, direction):
        client.field.update({"id": fields[1].id}, {"placeholder": "b"})
        client.field.update({"id": fields[3].id}, {"placeholder": "a"})
        order_by = [{"placeholder": direction}, {"order": "asc"}]
        full = [r.id for r in client.field.find_many(order_by=order_by)]
        assert len(full) == 5
        for i, anchor in enumerate(full):
            rows = client.field.find_many(order_by=order_by, cursor={"id": anchor})
            assert [r.id for r in rows] == full[i:]
            backwards = client.field.find_many(order_by=order_by, cursor={"id": anchor}, take=-2)
            assert [r.id for r in backwards] == full[max(0, i - 1):i + 1]

    def test_operators(self, client, fields):
        assert client.field.count({"order": {"gte": 1, "lt": 3}}) == 2
        assert client.field.count({"type": {"in": ["email", "number"]}}) == 2
        assert client.field.count({"label": {"contains": "ame"}}) == 1
        assert client.field.count({"label": {"startswith": "N"}}) == 2
        assert client.field.count({"type": {"not": "text"}}) == 3

    def test_combinators(self, client, fields):
        rows = client.field.find_many(
            where={"OR": [{"type": "email"}, {"required": True}]},
            order_by={"order": "asc"},
        )
        assert [r.label for r in rows] == ["Name", "Mail"]
        assert client.field.count({"NOT": {"type": "text"}}) == 3

    def test_distinct(self, client, fields):
        rows = client.field.find_many(distinct=["type"], order_by={"order": "asc"})
        assert [r.label for r in rows] == ["Name", "Mail", "Age", "Date"]

    def test_relation_filters(self, client, user, other_user, fields):
        forms = client.form.find_many(where={"fields": {"some": {"type": "email"}}})
        assert len(forms) == 1
        users = client.user.find_many(where={"forms": {"none": {}}})
        assert [u.id for u in users] == [other_user.id]
        rows = client.field.find_many(where={"form": {"slug": "survey-1"}})
        assert len(rows) == 5

    def test_find_first(self, client, fields):
        assert client.field.find_first(order_by={"order": "desc"}).label == "Date"
        assert client.field.find_first(where={"type": "radio"}) is None
        with pytest.raises(NotFoundError):
            client.field.find_first_or_throw(where={"type": "radio"})

    def test_unknown_column_rejected(self, client, fields):
        with pytest.raises(ValidationError):
            client.field.find_many(where={"colour": "red"})
        with pytest.raises(ValidationError):
            client.field.find_many(order_by={"order": "sideways"})


class TestAggregate:
    def test_aggregate(self, client, user, make_form, make_field):
        form = make_form(user)
        for i in range(3):
            make_field(form, label=f"F{i}", order=i)
        result = client.field.aggregate(
            where={"form_id": form.id},
            count=True,
            min_fields=["order"],
            max_fields=["order"],
            avg_fields=["order"],
            sum_fields=["order"],
        )
        assert result["_count"] == 3
        assert result["_min"] == {"order": 0}
        assert result["_max"] == {"order": 2}
        assert result["_avg"]["order"] == pytest.approx(1.0)
        assert result["_sum"] == {"order": 3}

    def test_empty_set(self, client):
        result = client.field.aggregate(count=True, max_fields=["order"])
        assert result["_count"] == 0
        assert result["_max"] == {"order": None}

    def test_non_numeric_average_rejected(self, client):
        with pytest.raises(ValidationError):
            client.field.aggregate(avg_fields=["label"])

    def test_nothing_requested(self, client):
        with pytest.raises(ValidationError):
            client.field.aggregate()

    def test_group_by(self, client, user, make_form, make_field):
        form = make_form(user)
        make_field(form, label="A", type="text", order=0)
        make_field(form, label="B", type="text", order=1)
        make_field(form, label="C", type="email", order=2)
        groups = client.field.group_by(
            by=["type"],
            count=True,
            max_fields=["order"],
            order_by={"type": "asc"},
        )
        assert groups == [
            {"type": "email", "_count": 1, "_max": {"order": 2}},
            {"type": "text", "_count": 2, "_max": {"order": 1}},
        ]


class TestFilters:
    def test_unique_keys(self):
        from submitin.models import Account, FieldValue, VerificationToken
        from submitin.repositories.filters import unique_keys

        assert unique_keys(Account)["provider_provider_account_id"] == ("provider", "provider_account_id")
        assert unique_keys(FieldValue)["response_id_field_id"] == ("response_id", "field_id")
        keys = unique_keys(VerificationToken)
        assert keys["identifier_token"] == ("identifier", "token")
        assert keys["token"] == ("token",)

    def test_unknown_include(self, client, user):
        with pytest.raises(ValidationError):
            client.user.find_unique({"id": user.id}, include={"friends": True})

    def test_unknown_operator(self, client):
        with pytest.raises(ValidationError):
            client.field.find_many(where={"order": {"between": [1, 2]}})

    def test_null_equality(self, client, user, make_form):
        make_form(user, slug="a")
        client.form.create({"slug": "b", "name": "B", "user_id": user.id, "description": "d"})
        assert [f.slug for f in client.form.find_many(where={"description": None})] == ["a"]
        assert [f.slug for f in client.form.find_many(where={"description": {"not": None}})] == ["b"]
