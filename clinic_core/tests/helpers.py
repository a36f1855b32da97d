# clinic_core/tests/helpers.py

def scoped(clinic):
    return {
        "HTTP_X_TENANT_ID": str(clinic.tenant_id),
        "HTTP_X_CLINIC_ID": str(clinic.id),
    }
