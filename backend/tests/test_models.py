"""
Tests for model mapping and helpers.
"""

import warnings

from sqlalchemy import inspect
from sqlalchemy.exc import SADeprecationWarning
from sqlalchemy.orm import configure_mappers

from event_admission.models.event import Event
from event_admission.models.registration import Registration, RegistrationStatus


def test_mappers_configure_without_deprecation_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error", SADeprecationWarning)
        configure_mappers()

    assert not inspect(Event).relationships
    assert not inspect(Registration).relationships


def test_event_is_bounded():
    assert Event(capacity=3).is_bounded is True
    assert Event(capacity=None).is_bounded is False


def test_tombstones_are_not_live():
    assert Registration(status=RegistrationStatus.WAITLIST.value).is_live is True
    assert Registration(status=RegistrationStatus.DROPPED.value).is_live is False
    assert Registration(status=RegistrationStatus.WITHDRAWN.value).is_live is False
