from apps.common.exceptions import DomainError


class ValidationError(DomainError):
    default_code = "invalid"
    default_detail = "Invalid payment data."


class InvalidPlanError(DomainError):
    default_code = "invalid_plan"
    default_detail = "Invalid financing terms."


class DuplicateInstallmentError(DomainError):
    status_code = 409
    default_code = "duplicate_installment"
    default_detail = "The installment already has an active payment."


class AlreadyProcessedError(DomainError):
    status_code = 409
    default_code = "already_processed"
    default_detail = "The payment is no longer pending."


class NotFoundError(DomainError):
    status_code = 404
    default_code = "not_found"
    default_detail = "Not found."
