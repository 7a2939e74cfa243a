"""Message catalogs for the user-facing strings."""
from __future__ import annotations

from typing import Any, Dict

DEFAULT_LOCALE = "es"
FALLBACK_LOCALE = "en"

CATALOGS: Dict[str, Dict[str, str]] = {
    "en": {
        "appTitle": "Library Desk",
        "catalog": "Catalog",
        "createBook": "Create Book",
        "circulation": "Borrow / Return",
        "lend": "Lend",
        "returns": "Returns",
        "history": "History",
        "returnDate": "Returned",
        "search": "Search",
        "searchBooks": "Search books...",
        "categories": "Categories",
        "company": "Company",
        "allCompanies": "All companies",
        "loading": "Loading...",
        "noBooksFound": "Oops, nothing on our shelves at the moment",
        "booksFetchError": "Could not load books. Please try again.",
        "bookFetchError": "Could not load the book details.",
        "facetsFetchError": "Could not load the filter options.",
        "title": "Title",
        "author": "Author",
        "editorial": "Editorial",
        "edition": "Edition",
        "coverType": "Cover type",
        "imageUrl": "Image URL",
        "invoiceCode": "Invoice code",
        "code": "Code",
        "location": "Location",
        "cost": "Cost",
        "dateAcquired": "Date acquired",
        "condition": "Condition",
        "status": "Status",
        "observations": "Observations",
        "copies": "Copies",
        "copiesCount": "{count} copies",
        "available": "Available",
        "unavailable": "Unavailable",
        "generalInfo": "General information",
        "close": "Close",
        "fieldRequired": "This field is required",
        "invalidCost": "Enter an amount such as 12.50",
        "invalidDate": "Enter a date as YYYY-MM-DD",
        "invalidImageUrl": "The image URL is not valid",
        "invalidChoice": "Choose one of the listed values",
        "returnBeforeBorrow": "The return date cannot be before the borrow date",
        "fixFormErrors": "Please fix the highlighted fields",
        "bookCreatedSuccess": "Book created successfully",
        "bookCreateError": "Could not create the book",
        "bookUpdatedSuccess": "Book updated successfully",
        "bookUpdateError": "Could not update the book",
        "copyAddedSuccess": "Copy added successfully",
        "copyAddError": "Could not add the copy",
        "copyUpdatedSuccess": "Copy updated successfully",
        "copyUpdateError": "Could not update the copy",
        "confirmDeleteCopy": "Delete this copy?",
        "confirmDeleteBook": "Delete this book and all of its copies?",
        "copyDeletedSuccess": "Copy deleted successfully",
        "copyDeleteError": "Could not delete the copy",
        "copyNotFound": "That copy no longer exists; it may have been deleted already",
        "bookDeletedSuccess": "Book deleted successfully",
        "bookDeleteError": "Could not delete the book",
        "borrowerName": "Borrower",
        "borrowDate": "Borrow date",
        "expectedReturnDate": "Expected return date",
        "comments": "Comments",
        "borrowSuccess": "Loan registered",
        "borrowError": "Could not register the loan",
        "returnSuccess": "Return registered",
        "returnError": "Could not register the return",
        "loansFetchError": "Could not load the loans",
        "noLoansFound": "No loans found",
        "email": "Email",
        "username": "Username",
        "password": "Password",
        "confirmPassword": "Confirm password",
        "login": "Log in",
        "logout": "Log out",
        "signup": "Sign up",
        "fillAllRequiredFields": "Please fill in all required fields",
        "loginSuccess": "Welcome back!",
        "loginError": "Could not log in",
        "logoutSuccess": "You have been logged out",
        "passwordsMismatch": "Passwords do not match",
        "signupSuccess": "Account created, you can log in now",
        "signupError": "Could not create the account",
        "page": "Page {current} of {total}",
    },
    "es": {
        "appTitle": "Biblioteca",
        "catalog": "Catálogo",
        "createBook": "Crear libro",
        "circulation": "Préstamos / Devoluciones",
        "lend": "Prestar",
        "returns": "Devoluciones",
        "history": "Historial",
        "returnDate": "Devuelto",
        "search": "Buscar",
        "searchBooks": "Buscar libros...",
        "categories": "Categorías",
        "company": "Institución",
        "allCompanies": "Todas las instituciones",
        "loading": "Cargando...",
        "noBooksFound": "Vaya, no hay nada en nuestros estantes por el momento",
        "booksFetchError": "No se pudieron cargar los libros. Inténtalo de nuevo.",
        "bookFetchError": "No se pudieron cargar los detalles del libro.",
        "facetsFetchError": "No se pudieron cargar los filtros.",
        "title": "Título",
        "author": "Autor",
        "editorial": "Editorial",
        "edition": "Edición",
        "coverType": "Tipo de tapa",
        "imageUrl": "URL de la imagen",
        "invoiceCode": "Código de factura",
        "code": "Código",
        "location": "Ubicación",
        "cost": "Costo",
        "dateAcquired": "Fecha de adquisición",
        "condition": "Condición",
        "status": "Estado",
        "observations": "Observaciones",
        "copies": "Ejemplares",
        "copiesCount": "{count} ejemplares",
        "available": "Disponible",
        "unavailable": "No disponible",
        "generalInfo": "Información general",
        "close": "Cerrar",
        "fieldRequired": "Este campo es obligatorio",
        "invalidCost": "Ingresa un monto como 12.50",
        "invalidDate": "Ingresa la fecha como AAAA-MM-DD",
        "invalidImageUrl": "La URL de la imagen no es válida",
        "invalidChoice": "Elige uno de los valores de la lista",
        "returnBeforeBorrow": "La fecha de devolución no puede ser anterior al préstamo",
        "fixFormErrors": "Corrige los campos marcados",
        "bookCreatedSuccess": "Libro creado correctamente",
        "bookCreateError": "No se pudo crear el libro",
        "bookUpdatedSuccess": "Libro actualizado correctamente",
        "bookUpdateError": "No se pudo actualizar el libro",
        "copyAddedSuccess": "Ejemplar agregado correctamente",
        "copyAddError": "No se pudo agregar el ejemplar",
        "copyUpdatedSuccess": "Ejemplar actualizado correctamente",
        "copyUpdateError": "No se pudo actualizar el ejemplar",
        "confirmDeleteCopy": "¿Eliminar este ejemplar?",
        "confirmDeleteBook": "¿Eliminar este libro y todos sus ejemplares?",
        "copyDeletedSuccess": "Ejemplar eliminado correctamente",
        "copyDeleteError": "No se pudo eliminar el ejemplar",
        "copyNotFound": "Ese ejemplar ya no existe; es posible que ya se haya eliminado",
        "bookDeletedSuccess": "Libro eliminado correctamente",
        "bookDeleteError": "No se pudo eliminar el libro",
        "borrowerName": "Prestatario",
        "borrowDate": "Fecha de préstamo",
        "expectedReturnDate": "Fecha prevista de devolución",
        "comments": "Comentarios",
        "borrowSuccess": "Préstamo registrado",
        "borrowError": "No se pudo registrar el préstamo",
        "returnSuccess": "Devolución registrada",
        "returnError": "No se pudo registrar la devolución",
        "loansFetchError": "No se pudieron cargar los préstamos",
        "noLoansFound": "No se encontraron préstamos",
        "email": "Correo electrónico",
        "username": "Usuario",
        "password": "Contraseña",
        "confirmPassword": "Confirmar contraseña",
        "login": "Iniciar sesión",
        "logout": "Cerrar sesión",
        "signup": "Registrarse",
        "fillAllRequiredFields": "Completa todos los campos obligatorios",
        "loginSuccess": "¡Bienvenido de nuevo!",
        "loginError": "No se pudo iniciar sesión",
        "logoutSuccess": "Has cerrado sesión",
        "passwordsMismatch": "Las contraseñas no coinciden",
        "signupSuccess": "Cuenta creada, ya puedes iniciar sesión",
        "signupError": "No se pudo crear la cuenta",
        "page": "Página {current} de {total}",
    },
}

SUPPORTED_LOCALES = tuple(CATALOGS)


def translate(key: str, locale: str = DEFAULT_LOCALE, **params: Any) -> str:
    """Look up ``key`` in the locale's catalog, falling back to English."""
    catalog = CATALOGS.get(locale) or CATALOGS[FALLBACK_LOCALE]
    template = catalog.get(key) or CATALOGS[FALLBACK_LOCALE].get(key) or key
    if not params:
        return template
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
