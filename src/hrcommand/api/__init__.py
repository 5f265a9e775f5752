# HR Command Center - API Module
#
# FastAPI backend exposing the backup engine over local HTTP.
