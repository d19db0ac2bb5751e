from __future__ import annotations

from helpers import run_rule


def test_g03_flags_unguarded_dereference_only() -> None:
    findings = run_rule(
        "G03",
        """
import java.util.Objects;

class Env {
    int early() {
        String x = System.getenv("A");
        if (x == null) {
            return 0;
        }
        return x.length();
    }

    int shortCircuit() {
        String y = System.getenv("B");
        return y != null && y.isEmpty() ? 1 : 0;
    }

    int required() {
        String z = System.getenv("C");
        Objects.requireNonNull(z);
        return z.length();
    }

    int unchecked() {
        String w = System.getenv("D");
        return w.length();
    }
}
""",
        path="Env.java",
    )
    assert [f.message for f in findings] == [
        "Variable `w` may be null here and is dereferenced without a null check."
    ]
    assert findings[0].severity == "warning"
    assert findings[0].location.start_line == 26


def test_g03_enclosing_if_guards_dereference() -> None:
    findings = run_rule(
        "G03",
        """
class Guarded {
    void run() {
        String x = System.getenv("A");
        if (x != null) {
            x.length();
        }
    }
}
""",
        path="Guarded.java",
    )
    assert findings == []


def test_g03_null_returning_method() -> None:
    findings = run_rule(
        "G03",
        """
class Lookup {
    String find(String key) {
        if (key.isEmpty()) {
            return null;
        }
        return key;
    }

    int use() {
        return find("a").length();
    }
}
""",
        path="Lookup.java",
    )
    by_severity = {f.severity: f for f in findings}
    assert len(findings) == 2

    advisory = by_severity["info"]
    assert advisory.message == "Method `find` returns null explicitly; callers cannot see that the result may be absent."
    assert advisory.suggestion == "Declare the return type as `Optional<String>` and `return Optional.empty();`."
    assert advisory.location.start_line == 5

    deref = by_severity["warning"]
    assert deref.message == "`find()` may return null and its result is dereferenced without a check."
    assert deref.location.start_line == 11


def test_g03_external_values_are_not_flagged() -> None:
    findings = run_rule(
        "G03",
        """
class Client {
    int size() {
        return Registry.lookup("x").items().size();
    }
}
""",
        path="Client.java",
    )
    assert findings == []


def test_g03_guard_outside_lambda_covers_captured_local() -> None:
    findings = run_rule(
        "G03",
        """
import java.util.List;

class Capture {
    void run(List<String> items) {
        String x = System.getenv("A");
        if (x != null) {
            items.forEach(i -> x.length());
        }
        if (x == null) {
            return;
        }
        items.forEach(i -> {
            x.trim();
        });
    }
}
""",
        path="Capture.java",
    )
    assert findings == []


def test_g03_guard_outside_lambda_does_not_cover_fields() -> None:
    findings = run_rule(
        "G03",
        """
import java.util.List;

class Holder {
    private String label;

    void clear() {
        label = null;
    }

    void run(List<String> items) {
        if (label != null) {
            items.forEach(i -> label.length());
        }
    }
}
""",
        path="Holder.java",
    )
    assert [f.message for f in findings] == [
        "Field `label` may be null here and is dereferenced without a null check."
    ]
    assert findings[0].location.start_line == 13


def test_g03_lazy_initialisation_counts_as_guard() -> None:
    findings = run_rule(
        "G03",
        """
import java.util.ArrayList;
import java.util.List;

class Cache {
    private List<String> values;

    void reset() {
        values = null;
    }

    int size() {
        if (values == null) {
            values = new ArrayList<>();
        }
        return values.size();
    }

    int peek() {
        if (values == null) {
            System.out.println("empty");
        }
        return values.size();
    }
}
""",
        path="Cache.java",
    )
    assert [(f.location.start_line, f.message) for f in findings] == [
        (23, "Field `values` may be null here and is dereferenced without a null check.")
    ]


def test_g04_flags_store_and_expose_of_mutable_list() -> None:
    findings = run_rule(
        "G04",
        """
import java.util.List;

class Items {
    private List<String> items;

    Items(List<String> items) {
        this.items = items;
    }

    public List<String> getItems() {
        return items;
    }
}
""",
        path="Items.java",
    )
    assert [f.location.start_line for f in findings] == [8, 12]
    store, expose = findings
    assert store.message == (
        "The constructor stores the caller's mutable `List<String>` `items` in field `items` without copying it."
    )
    assert store.suggestion == "this.items = new ArrayList<>(items);"
    assert expose.message == "`getItems()` returns the internal mutable `List<String>` field `items` directly."
    assert expose.suggestion == "return new ArrayList<>(items);"


def test_g04_copies_and_immutable_types_are_fine() -> None:
    findings = run_rule(
        "G04",
        """
import java.util.ArrayList;
import java.util.Collections;
import java.util.Date;
import java.util.List;

class Safe {
    private List<String> items;
    private String label;
    private Date created;

    Safe(List<String> items, String label, Date created) {
        this.items = new ArrayList<>(items);
        this.label = label;
        this.created = new Date(created.getTime());
    }

    public List<String> getItems() {
        return Collections.unmodifiableList(items);
    }

    public String getLabel() {
        return label;
    }
}
""",
        path="Safe.java",
    )
    assert findings == []


def test_g04_setter_with_array_suggests_clone() -> None:
    findings = run_rule(
        "G04",
        """
class Buffer {
    private byte[] data;

    void setData(byte[] data) {
        this.data = data;
    }
}
""",
        path="Buffer.java",
    )
    assert len(findings) == 1
    assert "setter `setData`" in findings[0].message
    assert findings[0].suggestion == "this.data = data.clone();"


def test_g04_methods_merely_starting_with_set_are_not_setters() -> None:
    source = """
import java.util.List;

class Session {
    private List<String> items;

    void %s(List<String> items) {
        this.items = items;
    }
}
"""
    assert run_rule("G04", source % "setup", path="Session.java") == []
    assert run_rule("G04", source % "settle", path="Session.java") == []
    assert len(run_rule("G04", source % "setItems", path="Session.java")) == 1


def test_g05_flags_unreachable_catch() -> None:
    source = """
import java.io.FileNotFoundException;
import java.io.IOException;

class Reader {
    void read() {
        try {
            open();
        } catch (%s e) {
            log(e);
        } catch (%s e) {
            log(e);
        }
    }

    void open() { }

    void log(Exception e) { }
}
"""
    findings = run_rule("G05", source % ("IOException", "FileNotFoundException"), path="Reader.java")
    assert len(findings) == 1
    assert findings[0].message == (
        "`catch (FileNotFoundException)` is unreachable: the earlier `catch (IOException)` already handles "
        "`FileNotFoundException`, which is a subtype."
    )
    assert findings[0].suggestion == "Move `catch (FileNotFoundException)` above `catch (IOException)`."
    assert findings[0].location.start_line == 11

    assert run_rule("G05", source % ("FileNotFoundException", "IOException"), path="Reader.java") == []


def test_g05_checked_exception_must_be_caught_or_declared() -> None:
    findings = run_rule(
        "G05",
        """
class Loader {
    void load() throws java.io.IOException {
        throw new java.io.IOException("boom");
    }

    void run() {
        load();
    }

    void safe() {
        try {
            load();
        } catch (java.io.IOException e) {
            throw new IllegalStateException(e);
        }
    }

    void vendor() {
        throw new VendorException();
    }
}
""",
        path="Loader.java",
    )
    assert len(findings) == 1
    finding = findings[0]
    assert finding.severity == "error"
    assert finding.message == "Checked exception `IOException` is neither caught nor declared by `run`."
    assert finding.location.start_line == 8
