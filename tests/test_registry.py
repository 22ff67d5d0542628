from backtester.models import CustomStrategy
from backtester.registry import StrategyRegistry, build_default_registry, list_strategies
from backtester.storage import CustomStrategyStore
from backtester.strategies import RSIStrategy


def test_default_registry_ids():
    registry = build_default_registry()
    assert [s.id for s in registry.list_strategies()] == ["sma_crossover", "rsi", "macd", "bollinger_bands"]
    assert registry.has("macd")
    assert registry.get("missing") is None


def test_registries_are_independent():
    first = build_default_registry()
    second = build_default_registry()
    first.unregister("rsi")
    assert not first.has("rsi")
    assert second.has("rsi")


def test_register_and_unregister():
    registry = StrategyRegistry()
    registry.register("my_rsi", RSIStrategy())
    assert len(registry) == 1
    assert registry.unregister("my_rsi")
    assert not registry.unregister("my_rsi")


def test_list_strategies_merges_custom():
    store = CustomStrategyStore()
    saved = store.save(CustomStrategy(name="Mine", description="custom one"))
    strategies = list_strategies(build_default_registry(), store)
    assert len(strategies) == 5
    custom = strategies[-1]
    assert custom.isCustom
    assert custom.id == saved.id
    assert custom.name == "Mine"
    assert all(not s.isCustom for s in strategies[:4])
    assert strategies[0].parameters[0].name == "short_window"
