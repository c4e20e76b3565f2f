from datetime import date

import pytest

from eventpass.coupons.models import Coupon
from eventpass.errors import (
    AttendeeCountError,
    ErrorCode,
    PurchaseLockedError,
    RegistrationIndexError,
    RegistrationLimitError,
    RegistrationValidationError,
    TicketTypeError,
)
from eventpass.registrations.builder import RegistrationBuilder, parse_attendee_count
from eventpass.registrations.models import age_from_date_of_birth


@pytest.mark.parametrize("value,expected", [(1, 1), ("3", 3), (" 10 ", 10)])
def test_parse_attendee_count_accepts_range(value, expected):
    assert parse_attendee_count(value, 10) == expected


@pytest.mark.parametrize("value", [0, 11, "abc", "", None, "2.5", -1, True])
def test_parse_attendee_count_rejects(value):
    with pytest.raises(AttendeeCountError) as exc:
        parse_attendee_count(value, 10)
    assert exc.value.code is ErrorCode.INVALID_ATTENDEE_COUNT
    assert "1–10" in exc.value.message


def test_set_attendee_count_prefills_first_name(builder):
    regs = builder.set_attendee_count(3)
    assert len(regs) == 3
    assert regs[0].name == "Asha"
    assert regs[1].name == "" and regs[2].name == ""
    assert builder.subtotal_cents == 0


def test_invalid_count_keeps_existing_list(builder):
    builder.set_attendee_count(2)
    with pytest.raises(AttendeeCountError):
        builder.set_attendee_count(11)
    assert len(builder) == 2


def test_invalid_count_before_any_list(builder):
    with pytest.raises(AttendeeCountError):
        builder.set_attendee_count("abc")
    assert builder.registrations is None


def test_ticket_type_sets_charge_and_subtotal(builder, adult_rate):
    builder.set_attendee_count(2)
    builder.set_ticket_type(0, adult_rate)
    builder.set_ticket_type(1, "child")
    assert builder.registrations[0].charge_cents == 5000
    assert builder.registrations[1].charge_cents == 2500
    assert builder.subtotal_cents == 7500
    assert builder.coupons.grand_total_cents == 7500


def test_unknown_ticket_type(builder):
    builder.set_attendee_count(1)
    with pytest.raises(TicketTypeError):
        builder.set_ticket_type(0, "vip")


def test_free_event_rejects_ticket_type(free_event, adult_rate):
    b = RegistrationBuilder(free_event)
    b.set_attendee_count(1)
    with pytest.raises(TicketTypeError):
        b.set_ticket_type(0, adult_rate)


def test_add_registration_limit(builder):
    builder.set_attendee_count(10)
    with pytest.raises(RegistrationLimitError):
        builder.add_registration()
    assert len(builder) == 10


def test_add_registration_clones_first_when_copy_enabled(builder, adult_rate):
    builder.set_attendee_count(1)
    builder.update_registration(0, name="Asha", age="30")
    builder.set_ticket_type(0, adult_rate)
    builder.toggle_copy_first_to_all()

    added = builder.add_registration()

    assert added.name == "Asha" and added.age == "30"
    assert added.ticket_type == adult_rate
    assert added is not builder.registrations[0]
    assert builder.subtotal_cents == 10000


def test_add_after_removing_all_with_copy_enabled(builder):
    builder.set_attendee_count(2)
    builder.toggle_copy_first_to_all()
    builder.remove_registration(1)
    builder.remove_registration(0)

    added = builder.add_registration()

    assert added.name == "" and added.ticket_type is None
    assert len(builder) == 1


def test_add_registration_blank_without_copy(builder):
    builder.set_attendee_count(1)
    added = builder.add_registration()
    assert added.name == "" and added.ticket_type is None


def test_toggle_copy_overwrites_others(builder, adult_rate):
    builder.set_attendee_count(3)
    builder.update_registration(0, name="Asha", age="30")
    builder.set_ticket_type(0, adult_rate)
    builder.update_registration(2, name="Ravi", age="12")

    assert builder.toggle_copy_first_to_all() is True

    for reg in builder.registrations:
        assert (reg.name, reg.age, reg.ticket_type) == ("Asha", "30", adult_rate)
    assert builder.subtotal_cents == 15000

    # Pas de synchronisation continue
    builder.update_registration(0, name="Asha K")
    assert builder.registrations[1].name == "Asha"


def test_toggle_copy_off_keeps_records(builder):
    builder.set_attendee_count(2)
    builder.update_registration(0, name="Asha", age="30")
    builder.toggle_copy_first_to_all()
    assert builder.toggle_copy_first_to_all() is False
    assert builder.registrations[1].name == "Asha"


def test_set_attendee_count_resets_copy_flag(builder):
    builder.set_attendee_count(2)
    builder.toggle_copy_first_to_all()
    builder.set_attendee_count(3)
    assert builder.copy_first_to_all is False


def test_remove_registration_recomputes(builder, adult_rate, child_rate):
    builder.set_attendee_count(2)
    builder.set_ticket_type(0, adult_rate)
    builder.set_ticket_type(1, child_rate)
    removed = builder.remove_registration(1)
    assert removed.ticket_type == child_rate
    assert builder.subtotal_cents == 5000


def test_remove_registration_bad_index(builder):
    builder.set_attendee_count(1)
    with pytest.raises(RegistrationIndexError):
        builder.remove_registration(4)


def test_remove_revokes_coupon(builder, adult_rate):
    builder.set_attendee_count(3)
    for i in range(3):
        builder.set_ticket_type(i, adult_rate)
    coupon = Coupon(code="GROUP3", discount_percent=10, max_discount_cents=100000, min_participants=3)
    assert builder.coupons.apply(coupon, builder.subtotal_cents, len(builder)) is True
    assert builder.coupons.discount_cents == 1500

    builder.remove_registration(2)

    assert builder.coupons.active is None
    assert builder.coupons.discount_cents == 0
    assert builder.coupons.grand_total_cents == 10000


def test_validation_reports_every_missing_field(builder):
    builder.set_attendee_count(2)
    builder.update_registration(0, age="30")

    with pytest.raises(RegistrationValidationError) as exc:
        builder.validate()

    found = {(e["index"], e["field"]) for e in exc.value.errors}
    assert found == {
        (0, "ticket_type"),
        (1, "name"),
        (1, "age"),
        (1, "ticket_type"),
    }


def test_validation_without_registrations(builder):
    with pytest.raises(RegistrationValidationError) as exc:
        builder.validate()
    assert exc.value.errors[0]["field"] == "attendee_count"


def test_free_event_validation_ignores_ticket_type(free_event):
    b = RegistrationBuilder(free_event, display_name="Asha")
    b.set_attendee_count(1)
    b.update_registration(0, age=30)
    b.validate()


def test_date_of_birth_sets_age(builder):
    builder.set_attendee_count(1)
    reg = builder.set_date_of_birth(0, date(2000, 6, 15), today=date(2024, 6, 14))
    assert reg.age == "23"
    assert reg.date_of_birth == date(2000, 6, 15)


def test_age_from_date_of_birth_on_birthday():
    assert age_from_date_of_birth(date(2000, 6, 15), today=date(2024, 6, 15)) == 24


def test_locked_builder_rejects_mutations(builder):
    builder.set_attendee_count(1)
    builder.lock()
    with pytest.raises(PurchaseLockedError):
        builder.add_registration()
    with pytest.raises(PurchaseLockedError):
        builder.update_registration(0, name="x")
    builder.unlock()
    builder.update_registration(0, name="x")
    assert builder.registrations[0].name == "x"
