"""
SeriCare Backend — Services Layer
==================================

What:  Business logic between the routes (HTTP) and the database.
How:   Plain classes with a module-level instance each; routes import the
       instance, tests construct their own with injected collaborators.

Service Inventory:
    - credential_service: bearer token issue/verify, password hashing
    - user_service:       signup, login
    - file_service:       image intake (validate, store) and stored-file cleanup
    - classifier_base:    abstract Classifier interface
    - inference_client:   HTTP Classifier against the external model server
    - disease_service:    disease profile for a 'diseased' verdict
    - upload_store:       upload record persistence, history, statistics
    - upload_service:     the submit flow tying the above together
"""
