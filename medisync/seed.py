import logging
from datetime import datetime
from sqlmodel import select
from medisync.db import get_session, init_db
from medisync.models import Doctor, Patient


logger = logging.getLogger(__name__)


DOCTORS = [
    {"id": "doc1", "name": "Dr. Alisha Mehta", "specialty": "General Physician", "email": "alisha.mehta@medisync.now"},
    {"id": "doc2", "name": "Dr. Vikram Rao", "specialty": "Cardiologist", "email": "vikram.rao@medisync.now"},
    {"id": "doc3", "name": "Dr. Priya Desai", "specialty": "Pediatrician", "email": "priya.desai@medisync.now"},
]

# Legacy free-text prescriptions have no "Prescribed on" line and sort by creation time
PATIENTS = [
    {
        "name": "Rohan Sharma",
        "age": 34,
        "diagnosis": "Common Cold, Viral Fever",
        "history": "No major illnesses. Occasional seasonal allergies.",
        "avatar_url": "https://placehold.co/100x100.png",
        "prescriptions": [
            "Paracetamol 500mg tablet (oral), twice a day for 3 days\n"
            "Instructions: Take with food\n"
            "Cetirizine 10mg tablet (oral), once daily at bedtime for 5 days"
        ],
        "created_at": datetime(2024, 1, 10, 9, 0),
    },
    {
        "name": "Priya Singh",
        "age": 28,
        "diagnosis": "Migraine",
        "history": "History of migraines since adolescence. Allergic to penicillin.",
        "avatar_url": "https://placehold.co/100x100.png",
        "created_at": datetime(2024, 2, 3, 11, 30),
    },
    {
        "name": "Amit Patel",
        "age": 45,
        "diagnosis": "Hypertension",
        "history": "Diagnosed with hypertension 2 years ago. On regular medication.",
        "avatar_url": "https://placehold.co/100x100.png",
        "created_at": datetime(2024, 3, 15, 14, 0),
    },
    {
        "name": "Sunita Reddy",
        "age": 52,
        "diagnosis": "Type 2 Diabetes",
        "history": "Family history of diabetes. Diagnosed 5 years ago.",
        "avatar_url": "https://placehold.co/100x100.png",
        "created_at": datetime(2024, 4, 2, 10, 15),
    },
]


def seed_doctors(bind=None, force_replace=False):
    """Seed the doctor roster"""
    with get_session(bind) as session:
        existing_doctors = session.exec(select(Doctor)).all()
        if existing_doctors and not force_replace:
            logger.info("Doctors already exist in the database. Skipping seed.")
            return
        if existing_doctors:
            logger.info("Force replacing doctors...")
            for doctor in existing_doctors:
                session.delete(doctor)
            session.commit()

        for doctor_data in DOCTORS:
            session.add(Doctor(**doctor_data))
        session.commit()
        logger.info(f"Seeded {len(DOCTORS)} doctors.")


def seed_patients(bind=None):
    """Seed demo patients when the collection is empty"""
    with get_session(bind) as session:
        if session.exec(select(Patient)).first() is not None:
            logger.info("Patients collection is not empty. No seeding needed.")
            return
        for patient_data in PATIENTS:
            session.add(Patient(**patient_data))
        session.commit()
        logger.info(f"Seeded {len(PATIENTS)} patients.")


def seed_all(bind=None, force_replace=False):
    init_db(bind)
    seed_doctors(bind, force_replace=force_replace)
    seed_patients(bind)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_all(force_replace=True)
