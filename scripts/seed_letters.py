import sys
import os

# Add the project root directory to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlmodel import Session

from app.database import engine, create_db_and_tables
from app.models.letter import LetterCreate
from app.services.letter_store import LetterStore, PhoneTaken

# Test data
test_letters = [
    {
        "phone": "+976 99112233",
        "title": "Merry Christmas, Bataa!",
        "context": "Thank you for a wonderful year of climbing, cooking and late-night debugging. See you at the New Year party.",
        "extra_note": "Your present is under the tree on the left.",
        "attachments": [{"kind": "url", "data": "https://picsum.photos/seed/xmas1/800/450"}],
    },
    {
        "phone": "+976 88114455",
        "title": "For Saraa",
        "context": "Every December I remember the first snow we walked through together.",
        "attachments": [],
    },
    {
        "phone": "+976 95667788",
        "title": "Happy holidays, team",
        "context": "A short note to say how proud I am of what we shipped this year.",
    },
]

def create_letters(session: Session):
    store = LetterStore(session)
    for letter_data in test_letters:
        try:
            letter = store.create(LetterCreate(**letter_data))
            print(f"Created letter {letter.id} for {letter.phone}")
        except PhoneTaken:
            print(f"Letter for {letter_data['phone']} already exists, skipping")

def main():
    create_db_and_tables()
    with Session(engine) as session:
        create_letters(session)

if __name__ == "__main__":
    main()
