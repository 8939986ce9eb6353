"""
Reset the study database.

DANGEROUS: This deletes all vocabulary, learners and study history!
Only use when you want to start fresh for testing.

Usage:
    python -m scripts.maintenance.reset_learning_db
"""

from palabras import mastery
from palabras.config import configure_logging


def main():
    configure_logging()

    print("=" * 60)
    print("WARNING: Reset Study Database")
    print("=" * 60)
    print()
    print("This will DELETE:")
    print("  - All vocabulary items")
    print("  - All learner profiles and their aggregate stats")
    print("  - All mastery records (attempts, accuracy, well-known flags)")
    print()

    response = input("Are you sure you want to reset? (type 'yes' to confirm): ")

    if response.lower() == "yes":
        print("\nResetting database...")
        mastery.reset_db()
        print("Database reset complete!")
        print("\nThe database now has empty tables ready for new study data.")
    else:
        print("\nCancelled. No changes made.")


if __name__ == "__main__":
    main()
