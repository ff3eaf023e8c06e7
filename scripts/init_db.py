from app.db import create_db_and_tables

if __name__ == "__main__":
    print("Creating billing tables...")
    create_db_and_tables()
    print("Tables created successfully!")
