"""Tests for holiday scoping."""

from datetime import date
from types import SimpleNamespace

from swimschool.services.holiday_scope import (
    applies_to_template,
    holiday_excludes,
    holidays_for_template,
    load_holidays_for_templates,
)
from swimschool.models import Holiday


def make_holiday(start, end=None, template_id=None, level_id=None):
    return SimpleNamespace(
        start_date=start, end_date=end or start, template_id=template_id, level_id=level_id
    )


TEMPLATE = SimpleNamespace(id=1, level_id=10, day_of_week=0)
OTHER_TEMPLATE = SimpleNamespace(id=2, level_id=10, day_of_week=0)


def test_global_holiday_applies_everywhere():
    assert applies_to_template(make_holiday(date(2026, 1, 5)), TEMPLATE)


def test_template_scope_does_not_widen_to_level():
    holiday = make_holiday(date(2026, 1, 5), template_id=1)
    assert applies_to_template(holiday, TEMPLATE)
    assert not applies_to_template(holiday, OTHER_TEMPLATE)


def test_level_scope():
    holiday = make_holiday(date(2026, 1, 5), level_id=10)
    assert applies_to_template(holiday, OTHER_TEMPLATE)
    assert not applies_to_template(holiday, SimpleNamespace(id=3, level_id=11))


def test_excludes_inclusive_range():
    holidays = [make_holiday(date(2026, 1, 5), date(2026, 1, 12))]
    assert holiday_excludes(holidays, TEMPLATE, date(2026, 1, 5))
    assert holiday_excludes(holidays, TEMPLATE, date(2026, 1, 12))
    assert not holiday_excludes(holidays, TEMPLATE, date(2026, 1, 13))


def test_holidays_for_template_filters_scope():
    holidays = [
        make_holiday(date(2026, 1, 5)),
        make_holiday(date(2026, 1, 5), template_id=2),
    ]
    assert len(holidays_for_template(holidays, TEMPLATE)) == 1


async def test_load_holidays_for_templates_single_query(db, factory):
    level = await factory.level()
    other_level = await factory.level("Dolphin")
    template = await factory.template(level)
    other = await factory.template(other_level)

    db.add_all([
        Holiday(name="Global", start_date=date(2026, 4, 6), end_date=date(2026, 4, 6)),
        Holiday(name="Level", start_date=date(2026, 4, 13), end_date=date(2026, 4, 13),
                level_id=level.id),
        Holiday(name="Other class", start_date=date(2026, 4, 20), end_date=date(2026, 4, 20),
                template_id=other.id),
        Holiday(name="Too early", start_date=date(2025, 4, 20), end_date=date(2025, 4, 20)),
    ])
    await db.commit()

    holidays = await load_holidays_for_templates(db, [template], start=date(2026, 1, 1))
    assert [h.name for h in holidays] == ["Global", "Level"]
