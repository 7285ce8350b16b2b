"""Seed a demo practice catalog and learners.
Run with: python seed_data.py
"""
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from codecoach import create_app
from codecoach.extensions import db
from codecoach.models import PracticeProblem, User

PROBLEMS = [
    # Loops and arrays
    {"title": "Sum of a list", "difficulty": "easy", "target_areas": ["loops"],
     "test_cases": [{"input": "1 2 3", "output": "6"}]},
    {"title": "FizzBuzz", "difficulty": "easy", "target_areas": ["loops", "conditionals"],
     "test_cases": [{"input": "15", "output": "FizzBuzz"}]},
    {"title": "Rotate an array", "difficulty": "medium", "target_areas": ["loops", "off_by_one"],
     "test_cases": [{"input": "1 2 3 4; 1", "output": "4 1 2 3"}]},
    {"title": "Spiral matrix", "difficulty": "hard", "target_areas": ["loops", "off_by_one"],
     "test_cases": [{"input": "2x2", "output": "1 2 4 3"}]},

    # Recursion
    {"title": "Factorial", "difficulty": "easy", "target_areas": ["recursion"],
     "test_cases": [{"input": "5", "output": "120"}]},
    {"title": "Reverse a string recursively", "difficulty": "easy", "target_areas": ["recursion", "strings"],
     "test_cases": [{"input": "abc", "output": "cba"}]},
    {"title": "Power set", "difficulty": "medium", "target_areas": ["recursion"],
     "test_cases": [{"input": "a b", "output": "[] [a] [b] [a b]"}]},
    {"title": "N-Queens count", "difficulty": "hard", "target_areas": ["recursion"],
     "test_cases": [{"input": "4", "output": "2"}]},

    # Null handling and conditionals
    {"title": "Safe dictionary lookup", "difficulty": "easy", "target_areas": ["null_handling"],
     "test_cases": [{"input": "{}; key", "output": "None"}]},
    {"title": "Optional chaining", "difficulty": "medium", "target_areas": ["null_handling", "conditionals"],
     "test_cases": [{"input": "a.b.c", "output": "None"}]},
    {"title": "Leap year", "difficulty": "easy", "target_areas": ["conditionals"],
     "test_cases": [{"input": "2000", "output": "true"}]},

    # Strings
    {"title": "Palindrome check", "difficulty": "easy", "target_areas": ["strings"],
     "test_cases": [{"input": "racecar", "output": "true"}]},
    {"title": "Longest common prefix", "difficulty": "medium", "target_areas": ["strings", "loops"],
     "test_cases": [{"input": "flower flow flight", "output": "fl"}]},
    {"title": "Regular expression matching", "difficulty": "hard", "target_areas": ["strings", "recursion"],
     "test_cases": [{"input": "aa; a*", "output": "true"}]},
]

USERS = [
    {"name": "Demo Beginner", "skill_level": "beginner"},
    {"name": "Demo Intermediate", "skill_level": "intermediate"},
    {"name": "Demo Advanced", "skill_level": "advanced"},
]


def seed():
    """Seed the practice catalog and demo users."""
    app = create_app()
    with app.app_context():
        existing_count = PracticeProblem.query.count()
        if existing_count > 0:
            print(f"Practice catalog already has {existing_count} entries. Skipping seed.")
            print("To re-seed, delete existing problems first.")
            return

        for data in PROBLEMS:
            problem = PracticeProblem(
                title=data['title'],
                difficulty=data['difficulty'],
            )
            problem.target_areas = data['target_areas']
            problem.test_cases = data['test_cases']
            db.session.add(problem)

        for data in USERS:
            db.session.add(User(name=data['name'], skill_level=data['skill_level']))

        db.session.commit()
        print(f"Seeded {len(PROBLEMS)} practice problems and {len(USERS)} users.")

        # Print summary
        for difficulty in ('easy', 'medium', 'hard'):
            count = sum(1 for p in PROBLEMS if p['difficulty'] == difficulty)
            print(f"  {difficulty}: {count} problems")


if __name__ == '__main__':
    seed()
