from addon_uploads.security.problem_details import problem_from_error, problem_response

__all__ = ["problem_from_error", "problem_response"]
