"""Unit tests for the service container (gradequest/services/container.py)"""
import pytest

from gradequest.cache.selection_cache import SelectionCache
from gradequest.db.memory_gateway import InMemoryGateway
from gradequest.gamification.weekly_selector import WeeklySelector, random_chooser
from gradequest.services import container as container_module
from gradequest.services.container import ServiceContainer, get_container, init_container
from gradequest.services.weekly_achievement_service import WeeklyAchievementService


def test_get_container_before_init(monkeypatch):
    monkeypatch.setattr(container_module, "_container", None)

    with pytest.raises(RuntimeError, match="not initialized"):
        get_container()


def test_init_container_sets_global(monkeypatch):
    monkeypatch.setattr(container_module, "_container", None)
    gateway = InMemoryGateway()

    container = init_container(gateway)

    assert get_container() is container
    assert container.gateway is gateway


def test_services_are_lazy_singletons():
    container = ServiceContainer(gateway=InMemoryGateway())

    assert container._weekly_achievement_service is None

    service = container.weekly_achievement_service

    assert isinstance(service, WeeklyAchievementService)
    assert container.weekly_achievement_service is service
    assert service.selector is container.selector


def test_selector_defaults():
    selector = ServiceContainer(gateway=InMemoryGateway()).selector

    assert isinstance(selector, WeeklySelector)
    assert selector.chooser is random_chooser
    assert isinstance(selector.cache, SelectionCache)
    assert selector.cache.cache is None


def test_chooser_override(chooser_first):
    selector = ServiceContainer(gateway=InMemoryGateway(), chooser=chooser_first).selector
    assert selector.chooser is chooser_first
