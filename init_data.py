from eselling import create_app
from eselling.services.seed_service import seed_admin, ADMIN_EMAIL

app = create_app()

with app.app_context():
    # Create admin account (if not exists)
    admin, created = seed_admin()
    if created:
        print(f"Created admin account: {ADMIN_EMAIL}")
    else:
        print(f"Admin account already exists: {ADMIN_EMAIL}")

    print("\nInitialization complete!")
