"""Firestore collection names used by the document backend."""

USERS_COLLECTION = "directory_users"
COMPANIES_COLLECTION = "companies"
SERVICES_COLLECTION = "services"
SERVICE_IMAGES_COLLECTION = "serviceImages"
JOB_OFFERS_COLLECTION = "jobOffers"
