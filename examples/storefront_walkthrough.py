"""
Example: A student's first lesson, from registration to the view limit.

Walks through the storefront with the seeded owner account: a student
registers, asks for credit, the owner approves it, the student buys a lesson
and watches it until the quota runs out. Study aids come from Gemini when
GEMINI_API_KEY is set, otherwise the fallback text is shown.
"""

import os
import tempfile
from decimal import Decimal

from lessonledger import (
    Storefront, SnapshotStore, RegistrationCandidate, LessonDefinition, Role,
    GeminiContentHelper, total_revenue, student_count, verify_invariants,
)


def main():
    print("=" * 80)
    print("LESSON STOREFRONT - Walkthrough")
    print("=" * 80)
    print()

    snapshot_dir = tempfile.mkdtemp(prefix="lessonledger-")
    snapshot = SnapshotStore(os.path.join(snapshot_dir, "storefront.json"))
    helper = GeminiContentHelper() if os.environ.get("GEMINI_API_KEY") else None
    store = Storefront(store=snapshot, content_helper=helper, verbose=True)

    print("Step 1: Registration and deposit request")
    print("-" * 80)
    store.register(RegistrationCandidate(
        username="ahmed",
        email="ahmed@mail.com",
        phone="01011111111",
        full_name="Ahmed Hassan",
        father_phone="01022222222",
        mother_phone="01033333333",
    ))
    store.request_deposit(100)
    request = store.state.deposit_requests[-1]
    print(f"  Request {request.id}: {request.amount} [{request.status.value}]")
    print()

    print("Step 2: The owner approves and publishes a new lesson")
    print("-" * 80)
    store.login("nour@gmail.com")
    store.process_deposit(request.id, approve=True)
    store.add_lesson(LessonDefinition(
        title="Vectors in the Plane",
        description="Addition, scaling and the dot product.",
        price=Decimal("20"),
        view_limit=2,
    ))
    print()

    print("Step 3: Purchase and metered viewing")
    print("-" * 80)
    store.login("ahmed@mail.com")
    store.purchase_lesson("l1")
    print(f"  Balance after purchase: {store.current_user.balance}")
    for attempt in range(1, 5):
        session = store.open_lesson("l1")
        result = session.play()
        print(f"  Viewing {attempt}: {'played' if result else 'refused'}, "
              f"{store.views_remaining('l1')} left")
    print()

    print("Step 4: Study aids")
    print("-" * 80)
    aids = store.study_aids("l1")
    print(f"  Summary: {aids.summary}")
    for item in aids.quiz:
        print(f"  Q: {item.question} -> {item.answer}")
    print()

    print("Step 5: Policy checks")
    print("-" * 80)
    store.change_user_role("u0", Role.STUDENT)
    print()

    print("Dashboard")
    print("-" * 80)
    print(f"  Students: {student_count(store.state)}")
    print(f"  Revenue:  {total_revenue(store.state)}")
    print(f"  Invariants valid: {verify_invariants(store.state)['valid']}")
    print(f"  Snapshot: {snapshot.path}")
    print()

    reloaded = Storefront(store=snapshot, verbose=False)
    print(f"Reloaded from disk: {reloaded.state!r}")


if __name__ == "__main__":
    main()
