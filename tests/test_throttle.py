from modules.auth.services.throttle import (
    Allowed, Blocked, CooldownTracker, InMemoryThrottleStore, LoginThrottleGuard, Throttled,
)


def fail(guard, email, times):
    for _ in range(times):
        guard.record_failure(email)


def test_permite_por_debajo_del_limite(guard):
    fail(guard, "a@example.com", 4)
    assert isinstance(guard.check("a@example.com"), Allowed)


def test_throttle_tras_cinco_fallos(guard):
    fail(guard, "a@example.com", 5)
    decision = guard.check("a@example.com")
    assert isinstance(decision, Throttled)
    assert decision.remaining_seconds == 60


def test_remaining_seconds_counts_down_to_zero(guard, clock):
    fail(guard, "a@example.com", 5)
    seen = []
    for _ in range(6):
        clock.advance(10)
        seen.append(guard.remaining_seconds("a@example.com"))
    assert seen == [50, 40, 30, 20, 10, 0]
    # Mientras dure el bloqueo el valor informado siempre es positivo
    clock.advance(-0.5)
    decision = guard.check("a@example.com")
    assert isinstance(decision, Throttled)
    assert decision.remaining_seconds >= 1


def test_cooldown_elapsed_resets_counter(guard, clock):
    fail(guard, "a@example.com", 5)
    clock.advance(61)
    assert isinstance(guard.check("a@example.com"), Allowed)
    # Contador reiniciado: un fallo más no vuelve a bloquear
    guard.record_failure("a@example.com")
    assert isinstance(guard.check("a@example.com"), Allowed)


def test_throttled_wins_over_blocked(guard):
    fail(guard, "a@example.com", 5)
    assert isinstance(guard.check("a@example.com", blocked=True), Throttled)


def test_blocked_when_not_throttled(guard):
    assert isinstance(guard.check("a@example.com", blocked=True), Blocked)


def test_keys_are_case_insensitive(guard):
    fail(guard, "User@Example.com", 5)
    assert isinstance(guard.check("user@example.com"), Throttled)


def test_success_clears_counter_and_flags(guard):
    fail(guard, "a@example.com", 5)
    guard.mark_warned("a@example.com")
    guard.mark_block_notified("a@example.com")

    guard.record_success("a@example.com")

    assert isinstance(guard.check("a@example.com"), Allowed)
    assert not guard.was_warned("a@example.com")
    assert not guard.was_block_notified("a@example.com")


def test_counters_are_independent_per_email(guard):
    fail(guard, "a@example.com", 5)
    assert isinstance(guard.check("b@example.com"), Allowed)


def test_store_can_be_shared_between_guards(clock):
    store = InMemoryThrottleStore()
    first = LoginThrottleGuard(store, limit=5, cooldown_seconds=60, clock=clock)
    second = LoginThrottleGuard(store, limit=5, cooldown_seconds=60, clock=clock)
    fail(first, "a@example.com", 5)
    assert isinstance(second.check("a@example.com"), Throttled)


def test_cooldown_tracker(clock):
    tracker = CooldownTracker(60, clock=clock)
    assert tracker.remaining_seconds("a@example.com") == 0
    tracker.touch("a@example.com")
    clock.advance(15)
    assert tracker.remaining_seconds("A@example.com") == 45
    clock.advance(45)
    assert tracker.remaining_seconds("a@example.com") == 0
